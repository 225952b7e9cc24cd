"""Tracing helpers for the onboarding planner backend.

Spans are emitted through the OpenTelemetry API. Without an SDK configured
in the process the API hands out non-recording spans, so instrumented code
runs unchanged in tests and local development.

PII and Sensitive Data Guidance:
--------------------------------
- NEVER put prompts, generated step text, or person/company names in span
  attributes; prompts embed all of them
- Record sizes and identifiers instead (prompt length, model name, plan id)
- Prefer structured logging with the project's StructuredLogger
  (core/error_handler.py) which automatically redacts sensitive keys
"""

from __future__ import annotations

from opentelemetry import trace


def get_tracer(name: str) -> trace.Tracer:
    """Get an OpenTelemetry tracer for custom instrumentation.

    Example:
        from core.observability import get_tracer

        tracer = get_tracer(__name__)

        async def call_model(prompt: str) -> str:
            with tracer.start_as_current_span("ollama.generate") as span:
                # Add safe attributes (no PII!)
                span.set_attribute("llm.prompt_chars", len(prompt))
                ...
    """
    return trace.get_tracer(name)
