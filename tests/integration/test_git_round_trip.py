from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path

import httpx
import pytest

from pipeheal.gitops.vcs import GitCli
from pipeheal.policy.validator import PatchValidator
from pipeheal.remediator import Remediator
from pipeheal.settings import Settings
from pipeheal.telemetry.audit import AuditLogger

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

ALLOWED = ["src/", "pom.xml", "Dockerfile", "k8s/"]

FIX_DIFF = (
    "diff --git a/src/main/java/Foo.java b/src/main/java/Foo.java\n"
    "--- a/src/main/java/Foo.java\n"
    "+++ b/src/main/java/Foo.java\n"
    "@@ -1,3 +1,3 @@\n"
    " class Foo {\n"
    '-    int x = "a";\n'
    "+    int x = 1;\n"
    " }\n"
    "diff --git a/k8s/probe.yaml b/k8s/probe.yaml\n"
    "new file mode 100644\n"
    "--- /dev/null\n"
    "+++ b/k8s/probe.yaml\n"
    "@@ -0,0 +1 @@\n"
    "+path: /health\n"
)


def _git(cwd: Path, *args: str) -> str:
    p = subprocess.run(
        ["git", "-c", "user.name=t", "-c", "user.email=t@example.com", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        check=True,
    )
    return p.stdout


@pytest.fixture
def repo(tmp_path) -> Path:
    remote = tmp_path / "remote.git"
    work = tmp_path / "work"
    remote.mkdir()
    work.mkdir()
    _git(remote, "init", "-q", "--bare")
    _git(work, "init", "-q")
    _git(work, "checkout", "-q", "-b", "main")
    (work / "src" / "main" / "java").mkdir(parents=True)
    (work / "src" / "main" / "java" / "Foo.java").write_text('class Foo {\n    int x = "a";\n}\n', encoding="utf-8")
    (work / "pom.xml").write_text("<project/>\n", encoding="utf-8")
    _git(work, "add", "-A")
    _git(work, "commit", "-q", "-m", "initial")
    _git(work, "remote", "add", "origin", str(remote))
    return work


def test_validated_paths_match_what_git_changes(repo) -> None:
    vcs = GitCli(repo_root=str(repo))
    res = PatchValidator(ALLOWED, vcs).validate(FIX_DIFF)
    patch = res.value
    assert vcs.apply(patch.diff_text).ok
    assert vcs.changed_files() == sorted(patch.touched_paths)


def test_rejected_patch_leaves_tree_untouched(repo) -> None:
    vcs = GitCli(repo_root=str(repo))
    stale = FIX_DIFF.replace('int x = "a";', 'int x = "zzz";')
    res = PatchValidator(ALLOWED, vcs).validate(stale)
    assert res.kind.value == "patch_does_not_apply"
    assert vcs.status() == ""


def test_remediation_pushes_branch_and_records_mock_pr(repo, tmp_path) -> None:
    (repo / "build.log").write_text("[ERROR] incompatible types\n", encoding="utf-8")
    model = httpx.MockTransport(
        lambda req: httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": FIX_DIFF}]}}]})
    )
    s = Settings(
        repo_root=str(repo),
        audit_log_path=str(tmp_path / "audit.jsonl"),
        model_api_key="k",
        github_mode="mock",
        mock_github_dir=str(tmp_path / "gh"),
    )
    vcs = GitCli(repo_root=str(repo), exclude_from_staging=(s.diagnostics_dir, s.build_log_path))
    outcome = Remediator(settings=s, vcs=vcs, audit=AuditLogger(s.audit_log_path), model_transport=model).remediate(
        stage_name="Maven Build", message="mvn exited with status 1", build_id="7"
    )

    assert outcome.status == "pr_created"
    assert outcome.branch == "ai-fix-7"
    committed = _git(repo, "show", "--name-only", "--pretty=format:", "HEAD").split()
    assert sorted(committed) == ["k8s/probe.yaml", "src/main/java/Foo.java"]
    assert _git(repo, "log", "-1", "--pretty=%an").strip() == "pipeheal-bot"
    assert _git(tmp_path / "remote.git", "rev-parse", "refs/heads/ai-fix-7").strip() == _git(repo, "rev-parse", "HEAD").strip()
    # diagnostics stay out of the commit but remain on disk
    assert (repo / "ai" / "patch.diff").exists()

    meta = json.loads(next((tmp_path / "gh" / "prs").glob("*.json")).read_text(encoding="utf-8"))
    assert meta["head"] == "ai-fix-7" and meta["base"] == "main"


def test_diagnostics_outside_checkout_do_not_block_commit(repo, tmp_path) -> None:
    model = httpx.MockTransport(
        lambda req: httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": FIX_DIFF}]}}]})
    )
    s = Settings(
        repo_root=str(repo),
        diagnostics_dir=str(tmp_path / "diag"),
        build_log_path=str(tmp_path / "build.log"),
        audit_log_path=str(tmp_path / "audit.jsonl"),
        model_api_key="k",
        github_mode="mock",
        mock_github_dir=str(tmp_path / "gh"),
    )
    vcs = GitCli(repo_root=str(repo), exclude_from_staging=(s.diagnostics_dir, s.build_log_path))
    outcome = Remediator(settings=s, vcs=vcs, audit=AuditLogger(s.audit_log_path), model_transport=model).remediate(
        stage_name="Maven Build", message="m", build_id="8"
    )

    assert outcome.status == "pr_created", outcome.details
    assert (tmp_path / "diag" / "patch.diff").exists()
    assert _git(tmp_path / "remote.git", "rev-parse", "refs/heads/ai-fix-8").strip() == _git(repo, "rev-parse", "HEAD").strip()
