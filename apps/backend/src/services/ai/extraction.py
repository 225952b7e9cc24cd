"""Pull a JSON document out of free-form model output.

Small local models wrap their JSON in code fences, prepend chatter, or run
out of tokens mid-object. ``try_parse_json`` absorbs all of that and returns
``None`` instead of raising, leaving the retry decision to the caller.
"""

from __future__ import annotations

import json
import re
from typing import Any


_FENCE_OPEN_RE = re.compile(r"```json\s*", re.IGNORECASE)


def strip_fences(text: str) -> str:
    return _FENCE_OPEN_RE.sub("", text).replace("```", "").strip()


def maybe_truncated_json(text: str) -> bool:
    """Return True when ``text`` looks like JSON that was cut off.

    Empty input counts as truncated. Anything that opens like JSON but does
    not close like JSON is treated as truncated too; a false positive only
    costs one repair call.
    """
    stripped = text.strip()
    if not stripped:
        return True
    starts_json = stripped.startswith(("{", "["))
    ends_json = stripped.endswith(("}", "]"))
    return starts_json and not ends_json


def _loads(text: str) -> Any | None:
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


def _span(text: str, opener: str, closer: str) -> str | None:
    first = text.find(opener)
    last = text.rfind(closer)
    if first == -1 or last <= first:
        return None
    return text[first : last + 1]


def try_parse_json(raw: str | None) -> Any | None:
    """Parse the JSON payload in ``raw`` or return None. Never raises."""
    if not raw:
        return None
    stripped = strip_fences(raw)
    if maybe_truncated_json(stripped):
        return None

    parsed = _loads(stripped)
    if parsed is not None:
        return parsed

    for opener, closer in (("{", "}"), ("[", "]")):
        candidate = _span(stripped, opener, closer)
        if candidate is None:
            continue
        parsed = _loads(candidate)
        if parsed is not None:
            return parsed
    return None
