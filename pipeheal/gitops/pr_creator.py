from __future__ import annotations

from dataclasses import dataclass

import httpx

from pipeheal.gitops.github_rest import GitHubRestClient
from pipeheal.gitops.mock_github import MockGitHub
from pipeheal.models import Err, ErrorKind, Ok, PullRequestResult, Result
from pipeheal.settings import Settings


def pr_title(*, stage_name: str, build_id: str) -> str:
    return f"[AI fix] {stage_name} failure (build {build_id})"


def pr_body(*, stage_name: str, build_id: str, touched_paths: list[str]) -> str:
    files = "\n".join(f"- `{p}`" for p in touched_paths) or "- (none)"
    return (
        "## Automated remediation (AI-suggested)\n\n"
        f"The pipeline stage **{stage_name}** failed in build **{build_id}**. "
        "This patch was generated by an AI model and passed only static safety checks "
        "(allow-listed paths, clean `git apply`).\n\n"
        "**Human review is required before merging.** The change has not been built, "
        "tested or deployed by the pipeline.\n\n"
        f"### Files changed\n{files}\n"
    )


@dataclass(frozen=True)
class PullRequestPublisher:
    settings: Settings
    transport: httpx.BaseTransport | None = None

    def _client(self) -> GitHubRestClient:
        return GitHubRestClient(
            token=str(self.settings.github_token),
            repo=str(self.settings.github_repo),
            api_base=self.settings.github_api_base,
            timeout_s=self.settings.github_timeout_s,
            transport=self.transport,
        )

    def publish(self, *, branch: str, stage_name: str, build_id: str, touched_paths: list[str]) -> Result[PullRequestResult]:
        title = pr_title(stage_name=stage_name, build_id=build_id)
        body = pr_body(stage_name=stage_name, build_id=build_id, touched_paths=touched_paths)
        base = self.settings.trunk_branch

        if self.settings.github_mode == "mock":
            try:
                pr = MockGitHub(self.settings.mock_github_dir).create_pull_request(
                    repo=self.settings.github_repo or "local/mock",
                    title=title,
                    body=body,
                    head=branch,
                    base=base,
                )
            except OSError as e:
                return Err(ErrorKind.pr_creation_failure, f"mock_pr_write_failed: {e}")
            return Ok(pr)

        if not self.settings.github_token or not self.settings.github_repo:
            return Err(
                ErrorKind.pr_creation_failure,
                "PIPEHEAL_GITHUB_TOKEN and PIPEHEAL_GITHUB_REPO are required for github_mode=real",
            )
        try:
            pr = self._client().create_pull_request(title=title, body=body, head=branch, base=base)
        except httpx.HTTPStatusError as e:
            return Err(
                ErrorKind.pr_creation_failure,
                f"github_http_{e.response.status_code}",
                (e.response.text[:1500],),
            )
        except (httpx.HTTPError, ValueError, KeyError) as e:
            return Err(ErrorKind.pr_creation_failure, f"github_error: {type(e).__name__}: {e}")
        return Ok(pr)

    def label(self, pr: PullRequestResult) -> str | None:
        """Apply configured labels. Returns an error string instead of raising."""
        labels = list(self.settings.pr_labels)
        if not labels or pr.mode != "real":
            return None
        try:
            self._client().add_labels(number=pr.pr_number, labels=labels)
        except httpx.HTTPError as e:
            return f"{type(e).__name__}: {e}"
        return None
