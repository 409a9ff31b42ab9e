from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Tuple

import httpx

from pipeheal.settings import Settings


@dataclass(frozen=True)
class StageSpec:
    name: str
    kind: Literal["command", "health"] = "command"
    argv: Tuple[str, ...] = ()
    # Tee this stage's output into the build log (the log the remediator reads).
    capture_log: bool = False


def _fmt_arg(template: str, *, build_id: str, settings: Settings) -> str:
    return (
        template.replace("{build_id}", build_id)
        .replace("{image}", settings.image_name)
        .replace("{k8s_dir}", settings.k8s_manifest_dir)
        .replace("{deployment}", settings.k8s_deployment)
        .replace("{rollout_timeout_s}", str(settings.rollout_timeout_s))
    )


def default_stages() -> List[StageSpec]:
    return [
        StageSpec(name="Maven Build", argv=("mvn", "-B", "clean", "package"), capture_log=True),
        StageSpec(name="Docker Build", argv=("docker", "build", "-t", "{image}:{build_id}", ".")),
        StageSpec(name="Docker Push", argv=("docker", "push", "{image}:{build_id}")),
        StageSpec(name="Deploy to Kubernetes", argv=("kubectl", "apply", "-f", "{k8s_dir}")),
        StageSpec(
            name="Verify Rollout",
            argv=("kubectl", "rollout", "status", "deployment/{deployment}", "--timeout={rollout_timeout_s}s"),
        ),
        StageSpec(name="Health Check", kind="health"),
    ]


def parse_stages_json(raw: str) -> List[StageSpec]:
    """
    [{"name": "...", "argv": [...], "capture_log": bool, "kind": "command"|"health"}]

    Raises ValueError on malformed input: a bad stage list is a configuration
    error, not something to remediate.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"stages_json is not valid JSON: {e}") from e
    if not isinstance(data, list) or not data:
        raise ValueError("stages_json must be a non-empty JSON list")
    out: List[StageSpec] = []
    for i, item in enumerate(data):
        if not isinstance(item, dict) or not isinstance(item.get("name"), str) or not item["name"].strip():
            raise ValueError(f"stages_json[{i}] needs a non-empty 'name'")
        kind = item.get("kind", "command")
        if kind not in ("command", "health"):
            raise ValueError(f"stages_json[{i}].kind must be 'command' or 'health'")
        argv = item.get("argv") or []
        if kind == "command" and (not isinstance(argv, list) or not argv or not all(isinstance(a, str) for a in argv)):
            raise ValueError(f"stages_json[{i}].argv must be a non-empty list of strings")
        out.append(
            StageSpec(
                name=item["name"].strip(),
                kind=kind,
                argv=tuple(argv),
                capture_log=bool(item.get("capture_log", False)),
            )
        )
    return out


def resolve_stages(settings: Settings) -> List[StageSpec]:
    return parse_stages_json(settings.stages_json) if settings.stages_json else default_stages()


def render_argv(stage: StageSpec, *, build_id: str, settings: Settings) -> List[str]:
    return [_fmt_arg(a, build_id=build_id, settings=settings) for a in stage.argv]


def check_health(
    url: str,
    *,
    attempts: int = 5,
    interval_s: float = 3.0,
    timeout_s: float = 10.0,
    transport: httpx.BaseTransport | None = None,
) -> Tuple[bool, str]:
    """
    Poll a health endpoint. Healthy = 2xx and, when the body is JSON with a
    "status" key, status == "UP".
    """
    last = "no attempts made"
    for attempt in range(1, max(1, int(attempts)) + 1):
        try:
            with httpx.Client(timeout=timeout_s, transport=transport) as c:
                r = c.get(url)
            if 200 <= r.status_code < 300:
                status = _json_status(r)
                if status is None or status == "UP":
                    return (True, f"healthy after {attempt} attempt(s)")
                last = f"status={status}"
            else:
                last = f"http_{r.status_code}"
        except httpx.HTTPError as e:
            last = f"{type(e).__name__}: {e}"
        if attempt < attempts:
            time.sleep(interval_s)
    return (False, f"health check failed for {url} after {attempts} attempt(s): {last}")


def _json_status(r: httpx.Response) -> str | None:
    try:
        data: Any = r.json()
    except ValueError:
        return None
    if isinstance(data, dict) and "status" in data:
        return str(data["status"])
    return None


def stage_env(settings: Settings, build_id: str) -> Dict[str, str]:
    return {"PIPEHEAL_BUILD_ID": build_id, "IMAGE": f"{settings.image_name}:{build_id}"}
