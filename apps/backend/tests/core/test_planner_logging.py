import logging

from core.error_handler import StructuredLogger, get_correlation_id, set_correlation_id


def test_structured_logger_redacts_sensitive_keys():
    logger = StructuredLogger("tests")
    sanitized = logger._sanitize_data(
        {
            "api_key": "placeholder_value",  # pragma: allowlist secret
            "person_name": "Jordan",
            "step_key": "step_2",
            "nested": {"authorization": "Bearer x", "phase": "outline_done"},
        }
    )

    assert sanitized["api_key"] == "[REDACTED]"
    assert sanitized["person_name"] == "[REDACTED]"
    # step identifiers are not secrets
    assert sanitized["step_key"] == "step_2"
    assert sanitized["nested"] == {
        "authorization": "[REDACTED]",
        "phase": "outline_done",
    }


def test_structured_logger_header_like_redaction():
    logger = StructuredLogger("tests")
    redacted = logger._redact_header_like({"name": "X-API-Key", "value": "abc"})
    assert redacted == {"name": "X-API-Key", "value": "[REDACTED]"}
    assert logger._redact_header_like({"name": "Accept", "value": "json"}) is None


def test_structured_logger_prefixes_correlation_id(caplog):
    set_correlation_id("cid-123")
    try:
        with caplog.at_level(logging.INFO, logger="tests.planner"):
            StructuredLogger("tests.planner").info("Outline ready", step_count=4)
    finally:
        set_correlation_id(None)

    record = caplog.records[-1]
    assert record.getMessage() == "[cid-123] Outline ready"
    assert record.structured_data["step_count"] == 4
    assert record.structured_data["correlation_id"] == "cid-123"


def test_get_correlation_id_generates_when_unset():
    set_correlation_id(None)
    generated = get_correlation_id()
    assert generated
    assert get_correlation_id() == generated
    set_correlation_id(None)
