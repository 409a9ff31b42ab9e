from __future__ import annotations

import os
from collections import deque
from dataclasses import dataclass
from typing import List, Optional

from pipeheal.gitops.vcs import VersionControl
from pipeheal.models import CommitSummary, FailureContext
from pipeheal.telemetry.diagnostics import FAILURE_CONTEXT_FILE, DiagnosticsStore


@dataclass(frozen=True)
class FailureContextCollector:
    """
    Gathers what a model needs to know about a failing stage.

    Never raises: a sub-step that fails leaves its field empty and is listed in
    `FailureContext.degraded`.
    """

    vcs: VersionControl
    build_log_path: str
    diagnostics: Optional[DiagnosticsStore] = None
    tail_lines: int = 200
    commit_limit: int = 10

    def _tail(self, path: str) -> str:
        # Bounded memory regardless of log size.
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return "\n".join(ln.rstrip("\n") for ln in deque(f, maxlen=max(0, self.tail_lines)))

    def collect(self, *, stage_name: str, message: str) -> FailureContext:
        degraded: List[str] = []

        commits: List[CommitSummary] = []
        try:
            commits = self.vcs.recent_commits(self.commit_limit)
        except Exception as e:  # noqa: BLE001
            degraded.append(f"recent_commits: {e}")

        status = ""
        try:
            status = self.vcs.status()
        except Exception as e:  # noqa: BLE001
            degraded.append(f"working_tree_status: {e}")

        log_tail = ""
        if not os.path.exists(self.build_log_path):
            degraded.append(f"build_log_tail: missing {self.build_log_path}")
        else:
            try:
                log_tail = self._tail(self.build_log_path)
            except OSError as e:
                degraded.append(f"build_log_tail: {e}")

        ctx = FailureContext(
            stage_name=stage_name,
            message=message or "",
            recent_commits=tuple(commits),
            working_tree_status=status,
            build_log_tail=log_tail,
            degraded=tuple(degraded),
        )
        if self.diagnostics is not None:
            err = self.diagnostics.write_text(FAILURE_CONTEXT_FILE, ctx.render() + "\n")
            if err:
                ctx = ctx.model_copy(update={"degraded": ctx.degraded + (f"diagnostics: {err}",)})
        return ctx
