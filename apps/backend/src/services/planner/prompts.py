"""Prompt templates for outline, step, regenerate and deep-dive calls."""

from __future__ import annotations

import json
from typing import Any

from schemas.plans import PlanRecord, PlanStepRow


def _optional_line(label: str, value: str | None) -> str:
    value = (value or "").strip()
    return f"{label}: {value}" if value else ""


def outline_prompt(
    *,
    company_name: str,
    company_title: str,
    short_description: str,
    long_description: str | None,
    min_steps: int,
    max_steps: int,
) -> str:
    return f"""Create an onboarding plan outline.

Return MINIFIED JSON exactly in this shape:
{{"step_count":N,"steps":[{{"step_key":"step_1","title":"..."}}, ...]}}

Rules:
- Choose N based on complexity. N must be an integer between {min_steps} and {max_steps}.
- step_count MUST equal steps.length.
- step_key must be exactly "step_1"..."step_N" (no gaps).
- title: <= 40 characters, action-oriented, non-redundant.
- Output only JSON. One line. No extra keys.

Company: {company_name.strip()}
Title: {company_title.strip()}
Description: {short_description.strip()}
{_optional_line("Additional context", long_description)}"""


def step_prompt(
    *,
    company_name: str,
    company_title: str,
    short_description: str,
    long_description: str | None,
    step_key: str,
    title: str,
    step_count: int,
) -> str:
    template = (
        f'{{"step_key":"{step_key}","title":"{title}","priority":"medium",'
        '"details":"...","success_criteria":"...","estimated_minutes":NN}'
    )
    return f"""Return ONLY valid MINIFIED JSON on one line.

You must fill VALUES for details/success_criteria/priority/estimated_minutes only.

DO NOT change step_key or title. Copy them EXACTLY.

JSON TEMPLATE (copy exactly, only replace the ... and NN values):
{template}

Rules:
- step_key MUST be exactly "{step_key}" (no other text).
- title MUST be exactly "{title}" (no other text).
- details: one sentence, <= 90 chars.
- success_criteria: one sentence, <= 80 chars.
- priority: low|medium|high.
- estimated_minutes: integer 10..90.
- No extra keys. No markdown.

Context:
Company: {company_name.strip()}
Role: {company_title.strip()}
Description: {short_description.strip()}
{_optional_line("More", long_description)}
Step {step_key} of {step_count}."""


def regenerate_prompt(
    *,
    plan: PlanRecord,
    step: PlanStepRow,
    user_feedback: str | None,
    constraints: dict[str, Any] | None,
) -> str:
    feedback = (user_feedback or "").strip() or "(none)"
    constraints_text = (
        json.dumps(constraints, ensure_ascii=False) if constraints else "(none)"
    )
    return f"""You are regenerating ONE onboarding step.

Return ONLY valid MINIFIED JSON on one line.

JSON TEMPLATE (copy exactly, only replace values):
{{"details":"...","success_criteria":"...","priority":"medium","estimated_minutes":NN}}

Rules:
- details: one sentence, <= 90 chars.
- success_criteria: one sentence, <= 80 chars.
- priority: low | medium | high.
- estimated_minutes: integer 10..90.
- No extra keys. No markdown.

ORIGINAL STEP:
Title: {step.title}
Details: {step.details}
Success Criteria: {step.success_criteria}
Priority: {step.priority}
Estimated Minutes: {step.estimated_minutes}

PLAN CONTEXT:
Company: {plan.company_name or ""}
Role: {plan.company_title or ""}
Description: {plan.short_description or ""}
{_optional_line("More", plan.long_description)}

USER FEEDBACK:
{feedback}

CONSTRAINTS:
{constraints_text}

Improve clarity, usefulness, and specificity. Do NOT repeat the original wording verbatim."""


def deep_dive_prompt(*, plan: PlanRecord, step: PlanStepRow) -> str:
    shape = (
        f'{{"step_key":"{step.step_key}","summary":"...","why_it_matters":"...",'
        '"prerequisites":["..."],"sub_tasks":[{"title":"...",'
        '"acceptance_criteria":"...","estimated_minutes":NN}],"pitfalls":["..."],'
        '"questions_to_answer":["..."],"next_action":"..."}'
    )
    return f"""Return ONLY valid MINIFIED JSON (single line).

Create a detailed playbook for completing this onboarding step.

Return JSON with keys:
{shape}

Rules:
- step_key MUST be exactly "{step.step_key}".
- Output only JSON, one line, no extra keys.

COMPANY:
Person: {plan.person_name or "(not provided)"}
Company: {plan.company_name or ""}
Title: {plan.company_title or ""}
Description: {plan.short_description or ""}
{_optional_line("Additional context", plan.long_description)}

STEP:
Step ID: {step.step_key}
Title: {step.title}
Priority: {step.priority}
Details: {step.details}
Success Criteria: {step.success_criteria}
Estimated Time: {step.estimated_minutes} minutes"""
