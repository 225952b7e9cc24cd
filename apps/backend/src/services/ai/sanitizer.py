"""Normalization helpers applied to every value the model hands back."""

from __future__ import annotations

import math
import re
from typing import Any, Literal


Priority = Literal["low", "medium", "high"]

PRIORITIES: frozenset[str] = frozenset({"low", "medium", "high"})

_WHITESPACE_RE = re.compile(r"\s+")
# Fragments the small models glue onto contractions ("user'end-user", "it'ty")
_GARBAGE_RE = re.compile(r"'\s*(end-user|thelived|ty)\b", re.IGNORECASE)
_TERMINAL = (".", "!", "?")
_WORD_CUT_MIN = 20

_QUOTE_TABLE = str.maketrans(
    {
        "“": '"',
        "”": '"',
        "‘": "'",
        "’": "'",
    }
)


def clean_text(value: Any, max_len: int) -> str:
    """Collapse, de-garble and bound a generated sentence.

    The result is at most ``max_len`` characters plus one terminal period
    and always ends in ``.``, ``!`` or ``?`` when non-empty. Never raises.
    """
    text = "" if value is None else str(value)
    text = _WHITESPACE_RE.sub(" ", text).translate(_QUOTE_TABLE).strip()

    text = _GARBAGE_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()

    # One trailing terminal does not count against max_len
    body = text[:-1] if text.endswith(_TERMINAL) else text
    if len(body) > max_len:
        cut = text.rfind(" ", 0, max_len + 1)
        text = (text[:cut] if cut > _WORD_CUT_MIN else text[:max_len]).strip()

    if text and not text.endswith(_TERMINAL):
        text += "."
    return text


def clamp_int(value: Any, low: int, high: int) -> int:
    """Truncate ``value`` toward zero and clamp it; non-numbers map to ``low``."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return low
    if not math.isfinite(number):
        return low
    return min(high, max(low, math.trunc(number)))


def normalize_priority(value: Any) -> Priority:
    text = "" if value is None else str(value).strip().lower()
    if text in PRIORITIES:
        return text  # type: ignore[return-value]
    return "medium"
