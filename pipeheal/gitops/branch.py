from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from pipeheal.gitops.vcs import CommandResult, VersionControl
from pipeheal.models import Err, ErrorKind, Ok, Patch, PublishedBranch, Result


def select_branch(
    *,
    current: Optional[str],
    trunk: str,
    prefix: str,
    build_id: str,
    detached_sentinel: str = "HEAD",
) -> Tuple[str, bool]:
    """
    Returns (branch_name, must_create).

    Trunk, detached HEAD and "no branch" get a fresh "<prefix>-<build_id>";
    any other branch is reused as-is.
    """
    cur = (current or "").strip()
    if not cur or cur == detached_sentinel or cur == trunk:
        return (f"{prefix}-{build_id}", True)
    return (cur, False)


def commit_message(*, stage_name: str, build_id: str) -> str:
    return f"AI remediation for failed stage '{stage_name}' (build {build_id})"


def _fail(step: str, r: CommandResult, branch: str) -> Err:
    return Err(
        ErrorKind.publish_failure,
        f"{step} failed for branch {branch} (rc={r.returncode})",
        (r.output[:2000],) if r.output else (),
    )


@dataclass(frozen=True)
class BranchPublisher:
    vcs: VersionControl
    trunk_branch: str
    branch_prefix: str
    remote: str = "origin"
    detached_sentinel: str = "HEAD"
    # CI-reported branch; wins over the checkout's own idea of HEAD.
    ci_branch: Optional[str] = None

    def _rollback(self, patch: Patch, err: Err) -> Err:
        # Nothing was committed; take the patch back out of the working tree.
        r = self.vcs.unapply(patch.diff_text)
        if r.ok:
            return err
        return Err(err.kind, err.reason + "; rollback failed", err.details + (r.output[:2000],))

    def publish(self, patch: Patch, *, stage_name: str, build_id: str) -> Result[PublishedBranch]:
        current = self.ci_branch or self.vcs.current_branch()
        branch, must_create = select_branch(
            current=current,
            trunk=self.trunk_branch,
            prefix=self.branch_prefix,
            build_id=build_id,
            detached_sentinel=self.detached_sentinel,
        )

        if must_create:
            r = self.vcs.create_branch(branch)
            if not r.ok:
                return _fail("create-branch", r, branch)

        r = self.vcs.apply(patch.diff_text)
        if not r.ok:
            return _fail("apply", r, branch)

        r = self.vcs.stage_all()
        if not r.ok:
            return self._rollback(patch, _fail("stage", r, branch))

        r = self.vcs.commit(commit_message(stage_name=stage_name, build_id=build_id))
        if not r.ok:
            return self._rollback(patch, _fail("commit", r, branch))
        committed = r.returncode == 0

        r = self.vcs.push(self.remote, branch)
        if not r.ok:
            return _fail("push", r, branch)

        return Ok(PublishedBranch(name=branch, created=must_create, committed=committed))
