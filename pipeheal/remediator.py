from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict

import httpx

from pipeheal.context.collector import FailureContextCollector
from pipeheal.context.snapshot import build_snapshot
from pipeheal.gitops.branch import BranchPublisher
from pipeheal.gitops.pr_creator import PullRequestPublisher
from pipeheal.gitops.vcs import VersionControl
from pipeheal.llm.extract import extract_text, strip_markdown_fence
from pipeheal.llm.model_client import GenerativeModelClient
from pipeheal.models import Err, ErrorKind, RemediationOutcome
from pipeheal.policy.validator import PatchValidator
from pipeheal.prompting.builder import build_prompt
from pipeheal.settings import Settings
from pipeheal.telemetry.audit import AuditLogger
from pipeheal.telemetry.diagnostics import (
    CHANGED_FILES_FILE,
    MODEL_RESPONSE_FILE,
    PATCH_FILE,
    PROMPT_FILE,
    DiagnosticsStore,
)

logger = logging.getLogger("pipeheal")


def _under_repo(settings: Settings, path: str) -> str:
    return path if os.path.isabs(path) else os.path.join(settings.repo_root, path)


@dataclass(frozen=True)
class Remediator:
    """
    One remediation attempt per failed stage:

        collect context -> build prompt -> call model -> extract text
        -> validate patch -> push branch -> open PR

    Every step returns a tagged result. The first `Err` ends the attempt
    (logged + audited); nothing here re-raises into the pipeline, which has
    already failed for its own reason.
    """

    settings: Settings
    vcs: VersionControl
    audit: AuditLogger
    model_transport: httpx.BaseTransport | None = None
    github_transport: httpx.BaseTransport | None = None

    def _diagnostics(self) -> DiagnosticsStore:
        return DiagnosticsStore(_under_repo(self.settings, self.settings.diagnostics_dir))

    def _note(self, diagnostics_error: str | None, correlation_id: str) -> None:
        if diagnostics_error:
            self.audit.write(correlation_id, "diagnostics.write_failed", {"error": diagnostics_error})

    def _abort(
        self,
        correlation_id: str,
        err: Err,
        *,
        stage_name: str,
        build_id: str,
        extra: Dict[str, Any] | None = None,
    ) -> RemediationOutcome:
        self.audit.write(
            correlation_id,
            "remediation.aborted",
            {"kind": err.kind.value, "reason": err.reason, "details": list(err.details), **(extra or {})},
        )
        offenders = f" ({', '.join(err.details)})" if err.kind == ErrorKind.disallowed_path else ""
        logger.warning("remediation aborted at %s: %s%s", err.kind.value, err.reason, offenders)
        return RemediationOutcome(
            correlation_id=correlation_id,
            stage_name=stage_name,
            build_id=build_id,
            status="aborted",
            error_kind=err.kind,
            reason=err.reason,
            details=list(err.details),
            **(extra or {}),
        )

    def remediate(self, *, stage_name: str, message: str, build_id: str) -> RemediationOutcome:
        s = self.settings
        audit = self.audit
        correlation_id = audit.new_correlation_id()
        audit.write(correlation_id, "remediation.started", {"stage": stage_name, "build_id": build_id, "message": message[:2000]})

        diagnostics = self._diagnostics()
        for e in diagnostics.reset():
            self._note(e, correlation_id)

        # --- ContextCollector ---
        collector = FailureContextCollector(
            vcs=self.vcs,
            build_log_path=_under_repo(s, s.build_log_path),
            diagnostics=diagnostics,
            tail_lines=s.log_tail_lines,
            commit_limit=s.recent_commit_count,
        )
        context = collector.collect(stage_name=stage_name, message=message)
        audit.write(
            correlation_id,
            "context.collected",
            {
                "commits": len(context.recent_commits),
                "log_tail_lines": len(context.build_log_tail.splitlines()),
                "degraded": list(context.degraded),
            },
        )
        if context.degraded:
            audit.write(
                correlation_id,
                "context.degraded",
                {"kind": ErrorKind.collection_degraded.value, "notes": list(context.degraded)},
            )

        # --- PromptBuilder ---
        snapshot = build_snapshot(self.vcs, s.allowed_prefixes)
        prompt = build_prompt(context=context, snapshot=snapshot, allowed_prefixes=s.allowed_prefixes)
        self._note(diagnostics.write_text(PROMPT_FILE, prompt.text), correlation_id)
        audit.write(
            correlation_id,
            "prompt.rendered",
            {
                "chars": len(prompt.text),
                "snapshot_files": len(snapshot.paths),
                "sha256": hashlib.sha256(prompt.text.encode("utf-8")).hexdigest(),
            },
        )

        # --- ModelClient ---
        client = GenerativeModelClient(
            url=s.model_url,
            api_key=s.model_api_key,
            api_key_header=s.model_api_key_header,
            timeout_s=s.model_timeout_s,
            transport=self.model_transport,
        )
        response = client.generate(prompt)
        if isinstance(response, Err):
            audit.write(correlation_id, "model.failed", {"reason": response.reason})
            return self._abort(correlation_id, response, stage_name=stage_name, build_id=build_id)
        raw = response.value
        self._note(diagnostics.write_bytes(MODEL_RESPONSE_FILE, raw), correlation_id)
        audit.write(correlation_id, "model.called", {"bytes": len(raw)})

        # --- ResponseExtractor ---
        text = strip_markdown_fence(extract_text(raw))
        if text.strip():
            self._note(diagnostics.write_text(PATCH_FILE, text + "\n"), correlation_id)
        audit.write(correlation_id, "patch.extracted", {"chars": len(text)})

        # --- PatchValidator ---
        verdict = PatchValidator(allowed_prefixes=s.allowed_prefixes, vcs=self.vcs).validate(text)
        if isinstance(verdict, Err):
            audit.write(
                correlation_id,
                "policy.decided",
                {"allowed": False, "kind": verdict.kind.value, "reason": verdict.reason, "details": list(verdict.details)},
            )
            return self._abort(correlation_id, verdict, stage_name=stage_name, build_id=build_id)
        patch = verdict.value
        touched = list(patch.touched_paths)
        self._note(diagnostics.write_lines(CHANGED_FILES_FILE, touched), correlation_id)
        audit.write(correlation_id, "policy.decided", {"allowed": True, "touched_paths": touched})

        # --- BranchPublisher ---
        publisher = BranchPublisher(
            vcs=self.vcs,
            trunk_branch=s.trunk_branch,
            branch_prefix=s.branch_prefix,
            remote=s.git_remote,
            detached_sentinel=s.detached_head_sentinel,
            ci_branch=s.ci_branch,
        )
        published = publisher.publish(patch, stage_name=stage_name, build_id=build_id)
        if isinstance(published, Err):
            return self._abort(
                correlation_id,
                published,
                stage_name=stage_name,
                build_id=build_id,
                extra={"touched_paths": touched},
            )
        branch = published.value
        audit.write(correlation_id, "branch.pushed", branch.model_dump(mode="json"))
        logger.info("pushed remediation branch %s", branch.name)

        # --- PullRequestPublisher ---
        prs = PullRequestPublisher(settings=s, transport=self.github_transport)
        opened = prs.publish(branch=branch.name, stage_name=stage_name, build_id=build_id, touched_paths=touched)
        if isinstance(opened, Err):
            # The pushed branch stays: the fix is still reachable without the PR record.
            audit.write(correlation_id, "pr.failed", {"reason": opened.reason, "details": list(opened.details), "branch": branch.name})
            logger.warning("pull request creation failed for %s: %s", branch.name, opened.reason)
            return RemediationOutcome(
                correlation_id=correlation_id,
                stage_name=stage_name,
                build_id=build_id,
                status="branch_pushed",
                error_kind=opened.kind,
                reason=opened.reason,
                details=list(opened.details),
                touched_paths=touched,
                branch=branch.name,
            )
        pr = opened.value
        audit.write(correlation_id, "pr.created", pr.model_dump(mode="json"))
        label_error = prs.label(pr)
        if label_error:
            audit.write(correlation_id, "pr.label_failed", {"error": label_error, "pr_number": pr.pr_number})
        logger.info("opened pull request %s", pr.pr_url)

        outcome = RemediationOutcome(
            correlation_id=correlation_id,
            stage_name=stage_name,
            build_id=build_id,
            status="pr_created",
            touched_paths=touched,
            branch=branch.name,
            pr=pr,
        )
        audit.write(correlation_id, "remediation.completed", {"status": outcome.status, "branch": branch.name, "pr_url": pr.pr_url})
        return outcome
