from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass

from pipeheal.models import PullRequestResult


@dataclass(frozen=True)
class MockGitHub:
    """
    PR creation for local dry runs (no network).

    It writes:
      - PR metadata: <root_dir>/prs/<n>.json
    """

    root_dir: str

    def create_pull_request(self, *, repo: str, title: str, body: str, head: str, base: str) -> PullRequestResult:
        pr_dir = os.path.join(self.root_dir, "prs")
        os.makedirs(pr_dir, exist_ok=True)
        pr_number = int(time.time() * 1000)
        while os.path.exists(os.path.join(pr_dir, f"{pr_number}.json")):
            pr_number += 1

        meta = {
            "pr_number": pr_number,
            "repo": repo,
            "title": title,
            "body": body,
            "head": head,
            "base": base,
        }
        with open(os.path.join(pr_dir, f"{pr_number}.json"), "w", encoding="utf-8") as f:
            json.dump(meta, f, indent=2)

        return PullRequestResult(
            mode="mock",
            pr_number=pr_number,
            pr_title=title,
            pr_url=f"file://{os.path.abspath(os.path.join(pr_dir, f'{pr_number}.json'))}",
            branch_name=head,
        )
