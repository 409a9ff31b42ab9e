from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from pipeheal.models import CommitSummary


@dataclass(frozen=True)
class CommandResult:
    ok: bool
    returncode: int
    output: str = ""
    stdout: str = ""


class VersionControl(Protocol):
    """
    Source-control capability used by the remediation core.

    Mutating operations report failures through `CommandResult` instead of
    raising. History/status/listing queries may raise; callers degrade.
    """

    def current_branch(self) -> Optional[str]: ...

    def recent_commits(self, limit: int) -> List[CommitSummary]: ...

    def status(self) -> str: ...

    def tracked_files(self) -> List[str]: ...

    def read_file(self, path: str) -> Optional[bytes]: ...

    def create_branch(self, name: str) -> CommandResult: ...

    def apply_check(self, diff_text: str) -> CommandResult: ...

    def apply(self, diff_text: str) -> CommandResult: ...

    def unapply(self, diff_text: str) -> CommandResult: ...

    def stage_all(self) -> CommandResult: ...

    def commit(self, message: str) -> CommandResult: ...

    def push(self, remote: str, branch: str) -> CommandResult: ...

    def changed_files(self) -> List[str]: ...


def _ensure_trailing_newline(diff_text: str) -> str:
    # git apply rejects a patch whose last hunk line lacks a newline.
    if diff_text and not diff_text.endswith("\n"):
        return diff_text + "\n"
    return diff_text


@dataclass(frozen=True)
class GitCli:
    """
    `VersionControl` backed by the git command line, run inside `repo_root`.
    """

    repo_root: str
    author_name: str = "pipeheal-bot"
    author_email: str = "pipeheal-bot@users.noreply.github.com"
    # Paths kept out of `stage_all` (diagnostics, build logs).
    exclude_from_staging: Sequence[str] = field(default_factory=tuple)
    timeout_s: float = 120.0

    def _run(self, args: List[str], *, input_text: str | None = None) -> CommandResult:
        try:
            p = subprocess.run(
                ["git", *args],
                cwd=os.path.abspath(self.repo_root),
                input=input_text,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout_s,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            return CommandResult(ok=False, returncode=-1, output=f"git {' '.join(args[:2])} failed: {e}")
        out = ((p.stdout or "") + ("\n" + p.stderr if p.stderr else "")).strip()
        return CommandResult(ok=(p.returncode == 0), returncode=p.returncode, output=out, stdout=p.stdout or "")

    def current_branch(self) -> Optional[str]:
        r = self._run(["rev-parse", "--abbrev-ref", "HEAD"])
        if not r.ok:
            return None
        name = r.stdout.strip()
        return name or None

    def recent_commits(self, limit: int) -> List[CommitSummary]:
        r = self._run(["log", f"-n{int(limit)}", "--pretty=format:%h%x09%s"])
        if not r.ok:
            raise RuntimeError(r.output or "git log failed")
        out: List[CommitSummary] = []
        for ln in r.stdout.splitlines():
            sha, _, summary = ln.partition("\t")
            if sha:
                out.append(CommitSummary(sha=sha, summary=summary))
        return out

    def status(self) -> str:
        r = self._run(["status", "--porcelain"])
        if not r.ok:
            raise RuntimeError(r.output or "git status failed")
        return r.stdout.rstrip("\n")

    def tracked_files(self) -> List[str]:
        r = self._run(["ls-files", "-z"])
        if not r.ok:
            raise RuntimeError(r.output or "git ls-files failed")
        return [p for p in r.stdout.split("\0") if p]

    def read_file(self, path: str) -> Optional[bytes]:
        abs_path = os.path.join(os.path.abspath(self.repo_root), path)
        try:
            with open(abs_path, "rb") as f:
                return f.read()
        except OSError:
            return None

    def create_branch(self, name: str) -> CommandResult:
        return self._run(["checkout", "-b", name])

    def apply_check(self, diff_text: str) -> CommandResult:
        return self._run(["apply", "--check", "--whitespace=nowarn", "-"], input_text=_ensure_trailing_newline(diff_text))

    def apply(self, diff_text: str) -> CommandResult:
        return self._run(["apply", "--whitespace=nowarn", "-"], input_text=_ensure_trailing_newline(diff_text))

    def unapply(self, diff_text: str) -> CommandResult:
        # Unstage, then reverse-apply: leaves the tree as it was before `apply`.
        r = self._run(["reset", "-q"])
        if not r.ok:
            return r
        return self._run(["apply", "-R", "--whitespace=nowarn", "-"], input_text=_ensure_trailing_newline(diff_text))

    def _exclude_pathspecs(self) -> List[str]:
        # git rejects pathspecs outside the work tree; those paths can't be staged anyway.
        root = os.path.realpath(self.repo_root)
        out: List[str] = []
        for p in self.exclude_from_staging:
            if not p:
                continue
            rel = os.path.relpath(os.path.realpath(os.path.join(root, p)), root)
            if rel == os.curdir or rel == os.pardir or rel.startswith(os.pardir + os.sep):
                continue
            out.append(f":(exclude){rel}")
        return out

    def stage_all(self) -> CommandResult:
        return self._run(["add", "-A", "--", ".", *self._exclude_pathspecs()])

    def commit(self, message: str) -> CommandResult:
        r = self._run(
            [
                "-c",
                f"user.name={self.author_name}",
                "-c",
                f"user.email={self.author_email}",
                "commit",
                "-m",
                message,
            ]
        )
        if not r.ok and "nothing to commit" in r.output.lower():
            # Not an error: the tree already matches the patch.
            return CommandResult(ok=True, returncode=r.returncode, output=r.output)
        return r

    def push(self, remote: str, branch: str) -> CommandResult:
        return self._run(["push", remote, f"HEAD:refs/heads/{branch}"])

    def changed_files(self) -> List[str]:
        # Tracked modifications plus untracked additions, relative to HEAD.
        names: set[str] = set()
        r = self._run(["diff", "--name-only", "--no-renames", "HEAD"])
        if r.ok:
            names.update(ln.strip() for ln in r.stdout.splitlines() if ln.strip())
        r2 = self._run(["ls-files", "--others", "--exclude-standard"])
        if r2.ok:
            names.update(ln.strip() for ln in r2.stdout.splitlines() if ln.strip())
        return sorted(names)
