from __future__ import annotations

from typing import Iterable, List


def is_safe_relative_path(p: str) -> bool:
    """
    True for a plain repo-relative path: no absolute root, no backslashes,
    no NUL, no empty / "." / ".." segments.
    """
    if not p or p.startswith("/") or "\\" in p or "\0" in p:
        return False
    return all(seg not in ("", ".", "..") for seg in p.split("/"))


def matches_allow_list(p: str, allowed: Iterable[str]) -> bool:
    """
    Exact-prefix matching.

    "src/"    matches "src/Foo.java" but not "src" or "srcfoo/x".
    "pom.xml" matches "pom.xml" only (not "pom.xml.bak").
    """
    if not is_safe_relative_path(p):
        return False
    for entry in allowed:
        if not entry:
            continue
        if entry.endswith("/"):
            if p.startswith(entry) and len(p) > len(entry):
                return True
        elif p == entry:
            return True
    return False


def disallowed_paths(paths: Iterable[str], allowed: Iterable[str]) -> List[str]:
    allowed = list(allowed)
    return [p for p in paths if not matches_allow_list(p, allowed)]
