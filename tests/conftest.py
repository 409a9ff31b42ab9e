from __future__ import annotations

import os
from typing import Dict, List, Optional

import pytest

from pipeheal.gitops.vcs import CommandResult
from pipeheal.models import CommitSummary


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Keep tests deterministic and isolated from developer machine env.
    """
    for k in list(os.environ.keys()):
        if k.startswith("PIPEHEAL_"):
            monkeypatch.delenv(k, raising=False)


class FakeVcs:
    """
    In-memory VersionControl: records every mutating call, answers queries from fields.
    """

    def __init__(
        self,
        *,
        branch: Optional[str] = "main",
        files: Optional[Dict[str, bytes]] = None,
        commits: Optional[List[CommitSummary]] = None,
        status_text: str = "",
        apply_check_ok: bool = True,
        push_ok: bool = True,
        commit_output: str = "",
        commit_rc: int = 0,
        fail: Optional[set[str]] = None,
    ) -> None:
        self.branch = branch
        self.files = dict(files or {})
        self.commits = list(commits or [])
        self.status_text = status_text
        self.apply_check_ok = apply_check_ok
        self.push_ok = push_ok
        self.commit_output = commit_output
        self.commit_rc = commit_rc
        self.fail = set(fail or ())
        self.calls: List[tuple] = []

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail:
            raise RuntimeError(f"{name} unavailable")

    def current_branch(self) -> Optional[str]:
        return self.branch

    def recent_commits(self, limit: int) -> List[CommitSummary]:
        self._maybe_fail("recent_commits")
        return self.commits[:limit]

    def status(self) -> str:
        self._maybe_fail("status")
        return self.status_text

    def tracked_files(self) -> List[str]:
        self._maybe_fail("tracked_files")
        return list(self.files)

    def read_file(self, path: str) -> Optional[bytes]:
        return self.files.get(path)

    def create_branch(self, name: str) -> CommandResult:
        self.calls.append(("create_branch", name))
        ok = "create_branch" not in self.fail
        if ok:
            self.branch = name
        return CommandResult(ok=ok, returncode=0 if ok else 128, output="" if ok else "fatal: branch exists")

    def apply_check(self, diff_text: str) -> CommandResult:
        self.calls.append(("apply_check",))
        if self.apply_check_ok:
            return CommandResult(ok=True, returncode=0)
        return CommandResult(ok=False, returncode=1, output="error: patch failed: src/Foo.java:1")

    def apply(self, diff_text: str) -> CommandResult:
        self.calls.append(("apply",))
        ok = "apply" not in self.fail
        return CommandResult(ok=ok, returncode=0 if ok else 1)

    def unapply(self, diff_text: str) -> CommandResult:
        self.calls.append(("unapply",))
        return CommandResult(ok=True, returncode=0)

    def stage_all(self) -> CommandResult:
        self.calls.append(("stage_all",))
        ok = "stage_all" not in self.fail
        return CommandResult(ok=ok, returncode=0 if ok else 128)

    def commit(self, message: str) -> CommandResult:
        self.calls.append(("commit", message))
        if "commit" in self.fail:
            return CommandResult(ok=False, returncode=128, output="fatal: unable to write index")
        return CommandResult(ok=True, returncode=self.commit_rc, output=self.commit_output)

    def push(self, remote: str, branch: str) -> CommandResult:
        self.calls.append(("push", remote, branch))
        if self.push_ok:
            return CommandResult(ok=True, returncode=0)
        return CommandResult(ok=False, returncode=1, output="! [rejected] (permission denied)")

    def changed_files(self) -> List[str]:
        return []

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def fake_vcs() -> FakeVcs:
    return FakeVcs(
        files={
            "src/main/java/Foo.java": b"class Foo {}\n",
            "pom.xml": b"<project/>\n",
            "README.md": b"readme\n",
        },
        commits=[CommitSummary(sha="abc1234", summary="Add Foo")],
        status_text=" M src/main/java/Foo.java",
    )


@pytest.fixture
def vcs_factory():
    return FakeVcs
