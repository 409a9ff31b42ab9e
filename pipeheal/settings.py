from __future__ import annotations

from typing import Tuple

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process configuration, built once at start-up and passed to every component.

    Frozen: nothing may mutate it after construction.
    """

    model_config = SettingsConfigDict(env_prefix="PIPEHEAL_", extra="ignore", frozen=True)

    # -------- Patch safety policy --------
    # Entries ending in "/" are directory prefixes; anything else names one exact file.
    # JSON list when supplied via env, e.g.
    #   PIPEHEAL_ALLOWED_PREFIXES='["src/", "pom.xml", "Dockerfile", "k8s/"]'
    allowed_prefixes: Tuple[str, ...] = ("src/", "pom.xml", "Dockerfile", "k8s/")

    # -------- Branch policy --------
    branch_prefix: str = "ai-fix"
    trunk_branch: str = "main"
    detached_head_sentinel: str = "HEAD"
    # Branch name reported by the CI system. Wins over `git rev-parse` because CI
    # checkouts are usually detached.
    ci_branch: str | None = None
    git_remote: str = "origin"
    git_author_name: str = "pipeheal-bot"
    git_author_email: str = "pipeheal-bot@users.noreply.github.com"

    # -------- Generative model endpoint --------
    model_url: str = "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"
    model_api_key: str | None = None
    model_api_key_header: str = "x-goog-api-key"
    model_timeout_s: float = 120.0

    # -------- Source host (pull requests) --------
    github_mode: str = "real"  # real|mock
    github_api_base: str = "https://api.github.com"
    github_repo: str | None = None  # owner/name
    github_token: str | None = None
    github_timeout_s: float = 15.0
    pr_labels: Tuple[str, ...] = ()
    mock_github_dir: str = ".mock_github"

    # -------- Workspace / diagnostics --------
    repo_root: str = "."
    diagnostics_dir: str = "ai"
    build_log_path: str = "build.log"
    log_tail_lines: int = 200
    recent_commit_count: int = 10
    audit_log_path: str = "var/audit/pipeheal_audit.jsonl"

    # CI build number (Jenkins BUILD_NUMBER, GitHub run id, ...). CLI --build-id wins.
    build_id: str | None = None

    # -------- Pipeline stages --------
    # Optional JSON override of the command stages:
    #   [{"name": "Maven Build", "argv": ["mvn", "-B", "verify"], "capture_log": true}]
    # argv items may use {build_id}, {image}, {k8s_dir}, {deployment}.
    stages_json: str | None = None
    image_name: str = "app"
    k8s_manifest_dir: str = "k8s"
    k8s_deployment: str = "app"
    rollout_timeout_s: int = 120
    stage_timeout_s: float = 1800.0
    # Health check runs only when a URL is configured.
    health_url: str | None = None
    health_attempts: int = 5
    health_interval_s: float = 3.0

    @field_validator("allowed_prefixes")
    @classmethod
    def _no_empty_prefix(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        # An empty entry would allow every path.
        cleaned = tuple(p.strip() for p in v if p and p.strip())
        if not cleaned:
            raise ValueError("allowed_prefixes must contain at least one non-empty entry")
        return cleaned
