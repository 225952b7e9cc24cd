"""Turn parsed model output into validated outline and step records.

The model's JSON is treated as untrusted: step keys are derived from
position, titles and content are cleaned and bounded, and anything
missing falls back to a deterministic default.
"""

from __future__ import annotations

import re
from typing import Any

from schemas.plans import OutlineStep, PlanOutline, StepContent
from services.ai.exceptions import StepContentError
from services.ai.sanitizer import clamp_int, clean_text, normalize_priority


DETAILS_MAX_LEN = 120
SUCCESS_CRITERIA_MAX_LEN = 110
MIN_MINUTES = 10
MAX_MINUTES = 90
DEFAULT_MINUTES = 30
MIN_TITLE_LEN = 6

_BARE_STEP_TITLE_RE = re.compile(r"^step\s*\d+$", re.IGNORECASE)


def step_key(index: int) -> str:
    return f"step_{index}"


def _as_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def normalize_outline(raw: Any, min_steps: int, max_steps: int) -> PlanOutline:
    """Build an outline of exactly ``step_count`` positional keys.

    ``step_count`` is clamped into ``[min_steps, max_steps]``. Titles are
    looked up by exact key in whatever the model listed; absent keys get
    ``Step <i>``.
    """
    payload = raw if isinstance(raw, dict) else {}
    listed = payload.get("steps")
    listed = listed if isinstance(listed, list) else []

    reported = payload.get("step_count")
    step_count = clamp_int(
        len(listed) if reported is None else reported, min_steps, max_steps
    )

    titles_by_key: dict[str, str] = {}
    for entry in listed:
        if not isinstance(entry, dict):
            continue
        key = _as_text(entry.get("step_key"))
        title = _as_text(entry.get("title"))
        if key and title:
            titles_by_key[key] = title

    steps = [
        OutlineStep(
            step_key=step_key(i),
            title=titles_by_key.get(step_key(i)) or f"Step {i}",
        )
        for i in range(1, step_count + 1)
    ]
    return PlanOutline(step_count=step_count, steps=steps)


def is_degenerate_title(title: str) -> bool:
    title = title.strip()
    return (
        not title
        or _BARE_STEP_TITLE_RE.match(title) is not None
        or len(title) < MIN_TITLE_LEN
    )


def repair_titles(outline: PlanOutline) -> PlanOutline:
    """Replace empty, ``Step N``-style or too-short titles."""
    steps: list[OutlineStep] = []
    for i, s in enumerate(outline.steps, start=1):
        title = s.title
        if is_degenerate_title(title):
            title = f"Define step {i} deliverable"
        steps.append(OutlineStep(step_key=s.step_key, title=title))
    return PlanOutline(step_count=outline.step_count, steps=steps)


def normalize_step_content(
    raw: Any, *, default_minutes: int = DEFAULT_MINUTES
) -> StepContent | None:
    """Clean the content fields; None when details or criteria end up empty."""
    payload = raw if isinstance(raw, dict) else {}
    details = clean_text(payload.get("details"), DETAILS_MAX_LEN)
    success_criteria = clean_text(
        payload.get("success_criteria"), SUCCESS_CRITERIA_MAX_LEN
    )
    if not details or not success_criteria:
        return None

    minutes = payload.get("estimated_minutes")
    return StepContent(
        details=details,
        success_criteria=success_criteria,
        priority=normalize_priority(payload.get("priority")),
        estimated_minutes=clamp_int(
            default_minutes if minutes is None else minutes, MIN_MINUTES, MAX_MINUTES
        ),
    )


def require_step_content(raw: Any, key: str) -> StepContent:
    """Like ``normalize_step_content`` but fails the run on missing content."""
    payload = raw if isinstance(raw, dict) else {}
    if not clean_text(payload.get("details"), DETAILS_MAX_LEN):
        raise StepContentError(f"Missing details for {key}")
    content = normalize_step_content(payload)
    if content is None:
        raise StepContentError(f"Missing success_criteria for {key}")
    return content
