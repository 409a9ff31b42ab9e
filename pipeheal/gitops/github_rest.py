from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence

import httpx

from pipeheal.models import PullRequestResult


@dataclass(frozen=True)
class GitHubRestClient:
    """
    Minimal GitHub REST wrapper: open a pull request, optionally label it.

    The branch itself is pushed with git beforehand; nothing here merges,
    polls or updates an existing PR. Mockable via `transport` (httpx.MockTransport).
    """

    token: str
    repo: str  # owner/name
    api_base: str = "https://api.github.com"
    timeout_s: float = 15.0
    transport: httpx.BaseTransport | None = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
        }

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout_s, transport=self.transport)

    def create_pull_request(self, *, title: str, body: str, head: str, base: str) -> PullRequestResult:
        url = f"{self.api_base.rstrip('/')}/repos/{self.repo}/pulls"
        payload = {"title": title, "head": head, "base": base, "body": body}
        with self._client() as c:
            r = c.post(url, headers=self._headers(), json=payload)
            r.raise_for_status()
            data = r.json()
        return PullRequestResult(
            mode="real",
            pr_number=int(data["number"]),
            pr_title=str(data.get("title") or title),
            pr_url=str(data.get("html_url") or ""),
            branch_name=head,
        )

    def add_labels(self, *, number: int, labels: Sequence[str]) -> None:
        # PRs share the issues label endpoint.
        url = f"{self.api_base.rstrip('/')}/repos/{self.repo}/issues/{number}/labels"
        with self._client() as c:
            r = c.post(url, headers=self._headers(), json={"labels": list(labels)})
            r.raise_for_status()
