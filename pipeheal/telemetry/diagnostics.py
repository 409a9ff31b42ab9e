from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable, List

FAILURE_CONTEXT_FILE = "failure_context.txt"
PROMPT_FILE = "prompt.txt"
MODEL_RESPONSE_FILE = "model_response.json"
PATCH_FILE = "patch.diff"
CHANGED_FILES_FILE = "changed_files.txt"

ALL_FILES = (FAILURE_CONTEXT_FILE, PROMPT_FILE, MODEL_RESPONSE_FILE, PATCH_FILE, CHANGED_FILES_FILE)


@dataclass(frozen=True)
class DiagnosticsStore:
    """
    Audit/debug copies of one remediation attempt, one fixed file per artifact.

    Best effort: write errors are returned, never raised, so diagnostics can't
    break remediation.
    """

    root_dir: str

    def path(self, name: str) -> str:
        return os.path.join(self.root_dir, name)

    def reset(self) -> List[str]:
        """Remove the previous attempt's artifacts. Returns the errors hit, if any."""
        errors: List[str] = []
        for name in ALL_FILES:
            p = self.path(name)
            try:
                if os.path.exists(p):
                    os.remove(p)
            except OSError as e:
                errors.append(f"{name}: {e}")
        return errors

    def write_text(self, name: str, text: str) -> str | None:
        try:
            os.makedirs(self.root_dir, exist_ok=True)
            with open(self.path(name), "w", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            return f"{name}: {e}"
        return None

    def write_bytes(self, name: str, data: bytes) -> str | None:
        try:
            os.makedirs(self.root_dir, exist_ok=True)
            with open(self.path(name), "wb") as f:
                f.write(data)
        except OSError as e:
            return f"{name}: {e}"
        return None

    def write_lines(self, name: str, lines: Iterable[str]) -> str | None:
        body = "\n".join(lines)
        return self.write_text(name, body + "\n" if body else "")
