"""Tool-call argument parsing, with best-effort repair of sloppy JSON.

Models frequently emit almost-JSON: trailing commas, single quotes, bare keys
or a missing closing brace when output is truncated. The repair pass fixes
those before giving up and wrapping the raw text as ``{"value": raw}``.
"""

from __future__ import annotations

import json
import re
from typing import Any

_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_BARE_KEY = re.compile(r"(?<=[{,])\s*([A-Za-z_][A-Za-z0-9_]*)\s*:")


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Return tool arguments as a plain dict, whatever shape the model sent."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if not isinstance(raw, str):
        return {"value": raw}

    text = raw.strip()
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = repair_json(text)
        if parsed is None:
            return {"value": raw}

    if isinstance(parsed, dict):
        return parsed
    return {"value": parsed}


def repair_json(text: str) -> Any | None:
    """Try common repairs on ``text``. Returns the parsed value or None."""
    candidate = text
    if '"' not in candidate and "'" in candidate:
        candidate = candidate.replace("'", '"')
    candidate = _TRAILING_COMMA.sub(r"\1", candidate)
    candidate = _BARE_KEY.sub(r' "\1":', candidate)
    candidate = _close_brackets(candidate)

    for attempt in (candidate, "{" + candidate + "}"):
        try:
            return json.loads(attempt)
        except json.JSONDecodeError:
            continue
    return None


def _close_brackets(text: str) -> str:
    """Append whatever closers are missing at the end of truncated JSON."""
    closers: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            in_string = not in_string
        elif in_string:
            continue
        elif ch in "{[":
            closers.append("}" if ch == "{" else "]")
        elif ch in "}]" and closers and closers[-1] == ch:
            closers.pop()

    if in_string:
        text += '"'
    return text + "".join(reversed(closers))
