from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


_HUNK_RE = re.compile(r"^@@ -(?P<os>\d+)(?:,(?P<ol>\d+))? \+(?P<ns>\d+)(?:,(?P<nl>\d+))? @@")
_C_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}

DEV_NULL = "/dev/null"


@dataclass(frozen=True)
class Hunk:
    old_start: int
    old_len: int
    new_start: int
    new_len: int
    lines: Tuple[str, ...]


@dataclass
class FilePatch:
    """
    One file section of a diff. Paths are repo-relative, i.e. what `git apply -p1`
    would write; None stands for /dev/null.
    """

    old_path: Optional[str] = None
    new_path: Optional[str] = None
    hunks: List[Hunk] = field(default_factory=list)
    is_new: bool = False
    is_deleted: bool = False
    is_rename: bool = False
    is_binary: bool = False

    @property
    def path(self) -> Optional[str]:
        return self.new_path if self.new_path is not None else self.old_path

    @property
    def touched(self) -> List[str]:
        out: List[str] = []
        for p in (self.old_path, self.new_path):
            if p is not None and p not in out:
                out.append(p)
        return out


@dataclass(frozen=True)
class ParsedDiff:
    files: Tuple[FilePatch, ...]

    @property
    def touched_paths(self) -> Tuple[str, ...]:
        """Every path the diff would create, modify, delete or rename (both sides)."""
        seen: List[str] = []
        for fp in self.files:
            for p in fp.touched:
                if p not in seen:
                    seen.append(p)
        return tuple(seen)


def _unquote_c_style(s: str) -> str:
    # git quotes unusual names: "a/caf\303\251.txt"
    buf = bytearray()
    i = 0
    while i < len(s):
        ch = s[i]
        if ch != "\\" or i + 1 >= len(s):
            buf.extend(ch.encode("utf-8"))
            i += 1
            continue
        nxt = s[i + 1]
        if nxt in _C_ESCAPES:
            buf.append(_C_ESCAPES[nxt])
            i += 2
        elif nxt in "01234567" and re.match(r"[0-7]{3}", s[i + 1 : i + 4]):
            buf.append(int(s[i + 1 : i + 4], 8) & 0xFF)
            i += 4
        else:
            # Unknown escape: keep the backslash so path policy sees it.
            buf.extend(ch.encode("utf-8"))
            i += 1
    return buf.decode("utf-8", errors="replace")


def _strip_p1(name: str) -> str:
    # `git apply` default is -p1: drop everything up to the first slash.
    _, sep, rest = name.partition("/")
    return rest if sep else ""


def _header_name(raw: str) -> str:
    s = raw.split("\t", 1)[0].rstrip("\r\n")
    if len(s) >= 2 and s.startswith('"') and s.endswith('"'):
        return _unquote_c_style(s[1:-1])
    return s.rstrip()


def _header_path(raw: str) -> Optional[str]:
    """Path from a ---/+++ line body, with git's -p1 applied."""
    name = _header_name(raw)
    if name == DEV_NULL:
        return None
    return _strip_p1(name)


def _extended_path(raw: str) -> str:
    # "rename from"/"copy to" lines carry paths without a/ b/ prefixes.
    return _header_name(raw)


def _git_header_paths(rest: str) -> Tuple[Optional[str], Optional[str]]:
    rest = rest.rstrip("\r\n")
    if rest.startswith('"'):
        m = re.match(r'^"((?:[^"\\]|\\.)*)"\s+(.*)$', rest)
        if not m:
            return (None, None)
        return (_strip_p1(_unquote_c_style(m.group(1))), _strip_p1(_header_name(m.group(2))))

    # Unquoted: prefer the split where both sides name the same file.
    candidates = [i for i in range(len(rest)) if rest.startswith(" b/", i)]
    for i in candidates:
        left, right = rest[:i], rest[i + 1 :]
        if _strip_p1(left) == _strip_p1(right):
            return (_strip_p1(left), _strip_p1(right))
    if candidates:
        i = candidates[0]
        return (_strip_p1(rest[:i]), _strip_p1(rest[i + 1 :]))
    parts = rest.split(" ", 1)
    if len(parts) == 2:
        return (_strip_p1(parts[0]), _strip_p1(parts[1]))
    return (None, None)


def _consume_hunk(lines: List[str], i: int) -> Tuple[Optional[Hunk], int]:
    """Parse the hunk starting at lines[i]; returns (hunk, index after it)."""
    m = _HUNK_RE.match(lines[i])
    if not m:
        return (None, i + 1)
    old_len = int(m.group("ol")) if m.group("ol") is not None else 1
    new_len = int(m.group("nl")) if m.group("nl") is not None else 1
    old_rem, new_rem = old_len, new_len
    body: List[str] = []
    j = i + 1
    while j < len(lines) and (old_rem > 0 or new_rem > 0):
        ln = lines[j]
        if ln.startswith("\\"):
            body.append(ln)
        elif ln == "" or ln.startswith(" "):
            old_rem -= 1
            new_rem -= 1
            body.append(ln)
        elif ln.startswith("-"):
            old_rem -= 1
            body.append(ln)
        elif ln.startswith("+"):
            new_rem -= 1
            body.append(ln)
        else:
            # Truncated hunk; let the caller look at this line again.
            break
        j += 1
    if j < len(lines) and lines[j].startswith("\\"):
        body.append(lines[j])
        j += 1
    hunk = Hunk(
        old_start=int(m.group("os")),
        old_len=old_len,
        new_start=int(m.group("ns")),
        new_len=new_len,
        lines=tuple(body),
    )
    return (hunk, j)


def _finish(fp: Optional[FilePatch], out: List[FilePatch]) -> None:
    if fp is None:
        return
    if fp.is_new:
        fp.old_path = None
    if fp.is_deleted:
        fp.new_path = None
    if fp.old_path is None and fp.new_path is None:
        return
    out.append(fp)


def parse_unified_diff(text: str) -> ParsedDiff:
    """
    Parse git-style or plain unified diffs into per-file sections.

    Hunk bodies are consumed by their header counts, so removed/added lines that
    look like "--- x" or "+++ y" are never taken for file headers. Text outside
    any file section (preamble) is ignored.
    """
    lines = (text or "").replace("\r\n", "\n").split("\n")
    out: List[FilePatch] = []
    cur: Optional[FilePatch] = None
    cur_has_headers = False
    i = 0
    while i < len(lines):
        ln = lines[i]

        if ln.startswith("diff --git "):
            _finish(cur, out)
            old, new = _git_header_paths(ln[len("diff --git ") :])
            cur = FilePatch(old_path=old, new_path=new)
            cur_has_headers = False
            i += 1
            continue

        if ln.startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ "):
            if cur is None or cur_has_headers or cur.hunks:
                _finish(cur, out)
                cur = FilePatch()
            old = _header_path(ln[4:])
            new = _header_path(lines[i + 1][4:])
            cur.old_path, cur.new_path = old, new
            if old is None:
                cur.is_new = True
            if new is None:
                cur.is_deleted = True
            cur_has_headers = True
            i += 2
            continue

        if ln.startswith("@@ ") and cur is not None:
            hunk, i = _consume_hunk(lines, i)
            if hunk is not None:
                cur.hunks.append(hunk)
            continue

        if cur is not None:
            if ln.startswith("new file mode"):
                cur.is_new = True
            elif ln.startswith("deleted file mode"):
                cur.is_deleted = True
            elif ln.startswith("rename from ") or ln.startswith("copy from "):
                cur.old_path = _extended_path(ln.split(" from ", 1)[1])
                cur.is_rename = ln.startswith("rename")
            elif ln.startswith("rename to ") or ln.startswith("copy to "):
                cur.new_path = _extended_path(ln.split(" to ", 1)[1])
                cur.is_rename = cur.is_rename or ln.startswith("rename")
            elif ln.startswith("Binary files ") or ln.startswith("GIT binary patch"):
                cur.is_binary = True
        i += 1

    _finish(cur, out)
    return ParsedDiff(files=tuple(out))
