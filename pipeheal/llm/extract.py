from __future__ import annotations

import json
from typing import Any, List


def _load_json(raw: bytes | str | None) -> Any:
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except (ValueError, RecursionError):
        return None


def _texts_from_parts(parts: Any) -> List[str]:
    # A part is {"text": "..."} or a wrapper holding its own {"parts": [...]}.
    out: List[str] = []
    if not isinstance(parts, list):
        return out
    for part in parts:
        if not isinstance(part, dict):
            continue
        text = part.get("text")
        if isinstance(text, str):
            out.append(text)
            continue
        nested = part.get("parts")
        if isinstance(nested, list):
            for inner in nested:
                if isinstance(inner, dict) and isinstance(inner.get("text"), str):
                    out.append(inner["text"])
    return out


def _texts_from_candidates(candidates: Any) -> List[str]:
    out: List[str] = []
    if not isinstance(candidates, list):
        return out
    for cand in candidates:
        if not isinstance(cand, dict):
            continue
        content = cand.get("content")
        if isinstance(content, list):
            out.extend(_texts_from_parts(content))
        elif isinstance(content, dict):
            if isinstance(content.get("text"), str):
                out.append(content["text"])
            else:
                out.extend(_texts_from_parts(content.get("parts")))
    return out


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return ""


def extract_text(raw: bytes | str | None) -> str:
    """
    Pull generated text out of a model response body.

    Shapes tried in order:
      1. candidates[].content as a list of parts (text, or nested parts[].text)
      2. candidates[].content as one object ({"text": ...} or {"parts": [...]})
      3. top-level "output"
      4. top-level "response" (stringified)

    Fragments across candidates are concatenated. Anything unrecognised,
    malformed or non-JSON gives "". Never raises.
    """
    data = _load_json(raw)
    if not isinstance(data, dict):
        return ""

    fragments = _texts_from_candidates(data.get("candidates"))
    if fragments:
        return "".join(fragments)

    for key in ("output", "response"):
        text = _stringify(data.get(key))
        if text:
            return text
    return ""


def strip_markdown_fence(text: str) -> str:
    """
    Remove one ```-fence wrapped around the whole text (```diff ... ```).

    Only surrounding newlines are trimmed: a trailing " " line is diff context.
    """
    s = (text or "").strip("\r\n")
    if not s.lstrip().startswith("```"):
        return s
    lines = s.lstrip().splitlines()
    body = lines[1:]
    if body and body[-1].strip().startswith("```"):
        body = body[:-1]
    return "\n".join(body).strip("\r\n")
