from __future__ import annotations

import pytest

from pipeheal.models import Err, ErrorKind, FileChangeKind, Ok
from pipeheal.policy.paths import is_safe_relative_path, matches_allow_list
from pipeheal.policy.validator import PatchValidator

ALLOWED = ["src/", "pom.xml", "Dockerfile", "k8s/"]


def _diff(*paths: str) -> str:
    out = []
    for p in paths:
        out += [f"diff --git a/{p} b/{p}", f"--- a/{p}", f"+++ b/{p}", "@@ -1 +1 @@", "-old", "+new"]
    return "\n".join(out) + "\n"


@pytest.mark.parametrize("text", ["", "   ", "\n\n\t  \n"])
def test_empty_or_whitespace_is_empty_response(text, fake_vcs) -> None:
    res = PatchValidator(ALLOWED, fake_vcs).validate(text)
    assert isinstance(res, Err)
    assert res.kind == ErrorKind.empty_response
    assert "apply_check" not in fake_vcs.call_names()


def test_prose_without_headers_is_no_changed_files(fake_vcs) -> None:
    res = PatchValidator(ALLOWED, fake_vcs).validate("Sorry, I can't fix this.")
    assert isinstance(res, Err)
    assert res.kind == ErrorKind.no_changed_files


def test_disallowed_path_reports_offenders_and_skips_apply_check(fake_vcs) -> None:
    res = PatchValidator(ALLOWED, fake_vcs).validate(_diff("src/Foo.java", "secrets/keys.pem", ".github/workflows/ci.yml"))
    assert isinstance(res, Err)
    assert res.kind == ErrorKind.disallowed_path
    assert res.details == ("secrets/keys.pem", ".github/workflows/ci.yml")
    assert fake_vcs.calls == []


def test_patch_that_does_not_apply(vcs_factory) -> None:
    vcs = vcs_factory(apply_check_ok=False)
    res = PatchValidator(ALLOWED, vcs).validate(_diff("src/Foo.java"))
    assert isinstance(res, Err)
    assert res.kind == ErrorKind.patch_does_not_apply
    assert "patch failed" in res.details[0]


def test_valid_patch(fake_vcs) -> None:
    res = PatchValidator(ALLOWED, fake_vcs).validate(_diff("src/main/java/Foo.java", "pom.xml", "k8s/deploy.yaml", "Dockerfile"))
    assert isinstance(res, Ok)
    patch = res.value
    assert patch.touched_paths == ("src/main/java/Foo.java", "pom.xml", "k8s/deploy.yaml", "Dockerfile")
    assert all(f.operation == FileChangeKind.update for f in patch.files)
    assert fake_vcs.call_names() == ["apply_check"]


@pytest.mark.parametrize(
    "path",
    [
        "src/../secrets/keys.pem",
        "src/./x",
        "/src/Foo.java",
        "src\\..\\secrets",
        "srcx/Foo.java",
        "src",
        "pom.xml.bak",
        "pom.xml/evil",
        "Dockerfile.dev",
        "k8s",
        "k8s//x",
        "",
    ],
)
def test_prefix_spoofing_and_traversal_are_rejected(path) -> None:
    assert matches_allow_list(path, ALLOWED) is False


@pytest.mark.parametrize("path", ["src/Foo.java", "src/a/b/c.txt", "pom.xml", "Dockerfile", "k8s/deployment.yaml"])
def test_allowed_paths(path) -> None:
    assert matches_allow_list(path, ALLOWED) is True


def test_traversal_inside_diff_header_is_rejected(fake_vcs) -> None:
    diff = "--- a/src/../secrets/keys.pem\n+++ b/src/../secrets/keys.pem\n@@ -1 +1 @@\n-a\n+b\n"
    res = PatchValidator(ALLOWED, fake_vcs).validate(diff)
    assert isinstance(res, Err)
    assert res.kind == ErrorKind.disallowed_path
    assert res.details == ("src/../secrets/keys.pem",)


def test_rename_out_of_protected_area_is_rejected(fake_vcs) -> None:
    diff = (
        "diff --git a/secrets/key.pem b/src/key.pem\n"
        "similarity index 100%\n"
        "rename from secrets/key.pem\n"
        "rename to src/key.pem\n"
    )
    res = PatchValidator(ALLOWED, fake_vcs).validate(diff)
    assert isinstance(res, Err)
    assert res.details == ("secrets/key.pem",)


def test_is_safe_relative_path() -> None:
    assert is_safe_relative_path("src/Foo.java")
    assert not is_safe_relative_path("a\0b")
    assert not is_safe_relative_path("../x")
