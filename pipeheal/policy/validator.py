from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from pipeheal.gitops.vcs import VersionControl
from pipeheal.models import Err, ErrorKind, FileChangeKind, Ok, Patch, PatchFileChange, Result
from pipeheal.parsers.unified_diff import FilePatch, parse_unified_diff
from pipeheal.policy.paths import disallowed_paths


def _change_kind(fp: FilePatch) -> FileChangeKind:
    if fp.is_new:
        return FileChangeKind.add
    if fp.is_deleted:
        return FileChangeKind.delete
    if fp.is_rename:
        return FileChangeKind.rename
    return FileChangeKind.update


@dataclass(frozen=True)
class PatchValidator:
    """
    Gates, in order, each a hard stop:
      1. empty text                     -> empty_response
      2. no file headers                -> no_changed_files
      3. any path outside the allow-list -> disallowed_path (all offenders reported)
      4. `git apply --check` fails       -> patch_does_not_apply
    """

    allowed_prefixes: Sequence[str]
    vcs: VersionControl

    def validate(self, text: str) -> Result[Patch]:
        diff_text = (text or "").strip("\r\n")
        if not diff_text.strip():
            return Err(ErrorKind.empty_response, "model returned no patch")

        parsed = parse_unified_diff(diff_text)
        touched = list(parsed.touched_paths)
        if not touched:
            return Err(ErrorKind.no_changed_files, "no changed files found in diff headers")

        bad: List[str] = disallowed_paths(touched, self.allowed_prefixes)
        if bad:
            return Err(
                ErrorKind.disallowed_path,
                f"patch touches {len(bad)} path(s) outside the allow-list",
                tuple(bad),
            )

        check = self.vcs.apply_check(diff_text)
        if not check.ok:
            return Err(
                ErrorKind.patch_does_not_apply,
                f"git apply --check failed (rc={check.returncode})",
                (check.output[:2000],) if check.output else (),
            )

        files = tuple(
            PatchFileChange(
                path=fp.path or "",
                operation=_change_kind(fp),
                old_path=fp.old_path if fp.is_rename else None,
            )
            for fp in parsed.files
        )
        return Ok(Patch(diff_text=diff_text, files=files, touched_paths=tuple(touched)))
