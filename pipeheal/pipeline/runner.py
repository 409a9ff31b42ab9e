from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Tuple

import httpx

from pipeheal.models import RemediationOutcome
from pipeheal.pipeline.stages import StageSpec, check_health, render_argv, resolve_stages, stage_env
from pipeheal.remediator import Remediator
from pipeheal.settings import Settings
from pipeheal.telemetry.audit import AuditLogger

logger = logging.getLogger("pipeheal")


@dataclass(frozen=True)
class PipelineResult:
    ok: bool
    build_id: str
    passed: Tuple[str, ...] = ()
    failed_stage: Optional[str] = None
    message: Optional[str] = None
    remediation: Optional[RemediationOutcome] = None


def _tail(text: str, n: int = 20) -> str:
    return "\n".join(text.splitlines()[-n:])


@dataclass(frozen=True)
class PipelineRunner:
    """
    Runs the delivery stages in order. The first failing stage stops the run,
    triggers one remediation attempt, and the run is reported as failed
    whatever remediation achieves.
    """

    settings: Settings
    remediator: Remediator
    audit: AuditLogger
    health_transport: httpx.BaseTransport | None = None

    def _build_log(self) -> str:
        p = self.settings.build_log_path
        return p if os.path.isabs(p) else os.path.join(self.settings.repo_root, p)

    def _write_build_log(self, text: str) -> None:
        path = self._build_log()
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            # Always leave a file behind, even when the tool printed nothing.
            f.write(text if text else "(no build output)\n")

    def _run_command(self, stage: StageSpec, build_id: str) -> Tuple[bool, str]:
        argv = render_argv(stage, build_id=build_id, settings=self.settings)
        env = {**os.environ, **stage_env(self.settings, build_id)}
        try:
            p = subprocess.run(
                argv,
                cwd=self.settings.repo_root,
                env=env,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.settings.stage_timeout_s,
            )
        except FileNotFoundError as e:
            if stage.capture_log:
                self._write_build_log(f"{e}\n")
            return (False, f"{argv[0]} not found: {e}")
        except OSError as e:
            if stage.capture_log:
                self._write_build_log(f"{e}\n")
            return (False, f"could not start {argv[0]}: {e}")
        except subprocess.TimeoutExpired:
            if stage.capture_log:
                self._write_build_log(f"timed out after {self.settings.stage_timeout_s}s\n")
            return (False, f"`{' '.join(argv)}` timed out after {self.settings.stage_timeout_s}s")

        output = (p.stdout or "") + (p.stderr or "")
        if stage.capture_log:
            self._write_build_log(output)
        if p.returncode != 0:
            detail = _tail(p.stderr or p.stdout or "")
            msg = f"`{' '.join(argv)}` exited with status {p.returncode}"
            return (False, f"{msg}\n{detail}" if detail else msg)
        return (True, "ok")

    def _run_stage(self, stage: StageSpec, build_id: str) -> Tuple[bool, str]:
        if stage.kind == "health":
            if not self.settings.health_url:
                return (True, "skipped: no health_url configured")
            return check_health(
                self.settings.health_url,
                attempts=self.settings.health_attempts,
                interval_s=self.settings.health_interval_s,
                transport=self.health_transport,
            )
        return self._run_command(stage, build_id)

    def run(self, *, build_id: str, stages: List[StageSpec] | None = None) -> PipelineResult:
        stages = stages if stages is not None else resolve_stages(self.settings)
        run_id = self.audit.new_correlation_id()
        passed: List[str] = []
        for stage in stages:
            self.audit.write(run_id, "stage.started", {"stage": stage.name, "build_id": build_id})
            logger.info("stage %s: started", stage.name)
            ok, message = self._run_stage(stage, build_id)
            if ok:
                self.audit.write(run_id, "stage.passed", {"stage": stage.name, "detail": message})
                passed.append(stage.name)
                continue

            self.audit.write(run_id, "stage.failed", {"stage": stage.name, "message": message[:2000]})
            logger.error("stage %s failed: %s", stage.name, message.splitlines()[0] if message else "")
            outcome = self.remediator.remediate(stage_name=stage.name, message=message, build_id=build_id)
            return PipelineResult(
                ok=False,
                build_id=build_id,
                passed=tuple(passed),
                failed_stage=stage.name,
                message=message,
                remediation=outcome,
            )
        return PipelineResult(ok=True, build_id=build_id, passed=tuple(passed))
