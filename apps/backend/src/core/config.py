"""Application settings, loaded from the environment and ``.env.<env>`` files."""

import json
import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ENV_FILES = {"development": ".env.dev", "production": ".env.prod", "test": None}


def _split_origins(raw: str) -> list[str]:
    text = raw.strip()
    if not text.startswith("["):
        return [part.strip() for part in text.split(",") if part.strip()]
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(
            "CORS_ORIGINS must be a CSV list or JSON array string"
        ) from exc
    if not isinstance(parsed, list):
        raise ValueError("CORS_ORIGINS JSON must be a list")
    return [str(origin).strip() for origin in parsed]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    APP_NAME: str = "OnboardingPlanner"
    ENVIRONMENT: str = "development"  # development | production | test
    # Echoed on every planner response so clients can tell deployments apart
    BUILD_MARKER: str = "ai-generate-plan stepwise-dynamicN"

    # Owner of plans created without an explicit user
    DEV_USER_ID: str = "00000000-0000-0000-0000-000000000000"

    # A CSV or JSON array string from the environment becomes list[str]
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    ALLOW_CREDENTIALS: bool = True

    OLLAMA_URL: str = "http://host.docker.internal:11434/api/chat"
    FAST_MODEL: str = "phi3:mini"
    SMART_MODEL: str = "llama3.1:8b"
    REPAIR_MODEL: str = "phi3:mini"

    # Outline step_count is clamped into this range
    MIN_STEPS: int = 3
    MAX_STEPS: int = 10

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        if isinstance(v, str):
            return _split_origins(v)
        if isinstance(v, list):
            return [str(origin).strip() for origin in v]
        raise ValueError("Invalid CORS_ORIGINS type; expected str or list[str]")

    @model_validator(mode="after")
    def _validate_step_bounds(self) -> "Settings":
        if not 1 <= self.MIN_STEPS <= self.MAX_STEPS:
            raise ValueError(
                "Step bounds misconfigured: require 1 <= MIN_STEPS <= MAX_STEPS "
                f"(got MIN_STEPS={self.MIN_STEPS}, MAX_STEPS={self.MAX_STEPS})"
            )
        return self

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Reject a ``*`` origin when credentials are allowed."""
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = _split_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and "*" in self.CORS_ORIGINS:
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but CORS_ORIGINS "
                "contains '*'; list explicit origins instead"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    environment = os.getenv("ENVIRONMENT", "development").lower()
    if environment not in ENV_FILES:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")
    # `_env_file` is accepted at runtime but missing from the type stubs
    return Settings(_env_file=ENV_FILES[environment])  # type: ignore[call-arg]
