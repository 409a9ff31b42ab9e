from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import List, Optional

from pipeheal.gitops.vcs import GitCli
from pipeheal.pipeline.runner import PipelineRunner
from pipeheal.remediator import Remediator
from pipeheal.settings import Settings
from pipeheal.telemetry.audit import AuditLogger


def _build_id(args: argparse.Namespace, settings: Settings) -> str:
    return str(args.build_id or settings.build_id or int(time.time()))


def build_remediator(settings: Settings) -> Remediator:
    vcs = GitCli(
        repo_root=settings.repo_root,
        author_name=settings.git_author_name,
        author_email=settings.git_author_email,
        exclude_from_staging=(settings.diagnostics_dir, settings.build_log_path),
    )
    return Remediator(settings=settings, vcs=vcs, audit=AuditLogger(settings.audit_log_path))


def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    remediator = build_remediator(settings)
    runner = PipelineRunner(settings=settings, remediator=remediator, audit=remediator.audit)
    res = runner.run(build_id=_build_id(args, settings))
    out = {
        "ok": res.ok,
        "build_id": res.build_id,
        "passed": list(res.passed),
        "failed_stage": res.failed_stage,
        "remediation": res.remediation.model_dump(mode="json") if res.remediation else None,
    }
    print(json.dumps(out, indent=2))
    return 0 if res.ok else 1


def _cmd_remediate(args: argparse.Namespace, settings: Settings) -> int:
    outcome = build_remediator(settings).remediate(
        stage_name=args.stage,
        message=args.message or "",
        build_id=_build_id(args, settings),
    )
    print(json.dumps(outcome.model_dump(mode="json"), indent=2))
    # Remediation never changes the pipeline's verdict.
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="pipeheal", description="Delivery pipeline with AI-assisted remediation.")
    ap.add_argument("-v", "--verbose", action="store_true")
    sub = ap.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="run all pipeline stages; remediate the first failure")
    run.add_argument("--build-id", default=None)

    rem = sub.add_parser("remediate", help="attempt remediation for a stage that failed elsewhere")
    rem.add_argument("--stage", required=True)
    rem.add_argument("--message", default="")
    rem.add_argument("--build-id", default=None)

    args = ap.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    settings = Settings()
    if args.command == "run":
        return _cmd_run(args, settings)
    return _cmd_remediate(args, settings)


if __name__ == "__main__":
    raise SystemExit(main())
