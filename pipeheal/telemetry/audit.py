from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger("pipeheal")


class AuditLogger:
    """
    Append-only JSONL audit trail.

    Best effort: a failed write is logged and returned, never raised, so the
    trail can't break a remediation attempt.
    """

    def __init__(self, path: str):
        self.path = path
        parent = os.path.dirname(path)
        if parent:
            try:
                os.makedirs(parent, exist_ok=True)
            except OSError as e:
                logger.warning("audit log directory unavailable: %s", e)

    def new_correlation_id(self) -> str:
        return uuid.uuid4().hex

    def write(
        self,
        correlation_id: str,
        event_type: str,
        payload: Dict[str, Any],
        *,
        actor: str = "pipeheal",
        timestamp: Optional[str] = None,
    ) -> str | None:
        record = {
            "ts": timestamp or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "correlation_id": correlation_id,
            "actor": actor,
            "event_type": event_type,
            "payload": payload,
        }
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            logger.warning("audit write failed for %s: %s", event_type, e)
            return f"{event_type}: {e}"
        return None


def read_events(path: str, *, correlation_id: str | None = None) -> list[Dict[str, Any]]:
    """
    Load audit records (optionally for one remediation attempt). Unparseable lines are skipped.
    """
    if not os.path.exists(path):
        return []
    out: list[Dict[str, Any]] = []
    with open(path, "r", encoding="utf-8") as f:
        for ln in f:
            ln = ln.strip()
            if not ln:
                continue
            try:
                rec = json.loads(ln)
            except json.JSONDecodeError:
                continue
            if correlation_id and rec.get("correlation_id") != correlation_id:
                continue
            out.append(rec)
    return out
