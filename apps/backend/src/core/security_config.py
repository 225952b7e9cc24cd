"""What the API keeps out of logs and error bodies.

``StructuredLogger`` masks any field whose name contains one of
``SENSITIVE_KEYS``; ``_build_error_response`` drops error fields the
current environment does not list.
"""

# Substring match, so bare fragments like "key" or "name" must not appear
# here ("step_key" and "company_name" are logged as-is).
SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        # credentials
        "password",
        "secret",
        "api_key",
        "access_token",
        "refresh_token",
        "auth_token",
        "authorization",
        "bearer",
        "jwt",
        "session_id",
        # request headers
        "cookie",
        "x-api-key",
        "x-auth-token",
        # personal data captured on plans
        "person_name",
        "email",
        "phone",
    }
)

_ALWAYS_EXPOSED = frozenset({"correlation_id", "type"})
_DIAGNOSTIC_FIELDS = frozenset(
    {"details", "traceback", "exception_type", "validation_errors"}
)


def get_allowed_error_fields(environment: str) -> set[str]:
    """Error body fields allowed in ``environment``; production hides diagnostics."""
    if environment == "production":
        return set(_ALWAYS_EXPOSED)
    return set(_ALWAYS_EXPOSED | _DIAGNOSTIC_FIELDS)


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in SENSITIVE_KEYS)
