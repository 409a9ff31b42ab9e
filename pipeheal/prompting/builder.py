from __future__ import annotations

from typing import Iterable

from pipeheal.models import FailureContext, Prompt, RepositorySnapshot


REMEDIATION_PROMPT_V1 = """You are a build and deployment repair assistant for a CI/CD pipeline.
A pipeline stage has failed. Propose the smallest source change that fixes it.

Output requirements (non-negotiable):
- Output EXACTLY ONE unified diff (git format, paths prefixed with a/ and b/), or an EMPTY string if you cannot propose a safe fix.
- No explanations, no prose, no markdown code fences. Nothing before or after the diff.
- Only modify files under these allowed paths:
{allowed}
- Never touch secrets, credentials, CI configuration, or any path not listed above.
- The diff must apply cleanly with `git apply` against the repository snapshot below.

=== FAILURE CONTEXT ===
{context}
=== END FAILURE CONTEXT ===

=== REPOSITORY SNAPSHOT ===
Files ({file_count}):
{files}

Archive (tar.gz, base64):
{archive}
=== END REPOSITORY SNAPSHOT ===
"""


def build_prompt(
    *,
    context: FailureContext,
    snapshot: RepositorySnapshot,
    allowed_prefixes: Iterable[str],
) -> Prompt:
    """
    Render the remediation instructions. Identical inputs give byte-identical text.
    """
    allowed = "\n".join(f"  - {p}" for p in allowed_prefixes)
    files = "\n".join(f"  {p}" for p in snapshot.paths) or "  (none)"
    text = REMEDIATION_PROMPT_V1.format(
        allowed=allowed,
        context=context.render(),
        file_count=len(snapshot.paths),
        files=files,
        archive=snapshot.archive_b64,
    )
    return Prompt(text=text)
