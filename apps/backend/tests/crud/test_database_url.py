import pytest

from dependencies import db


@pytest.mark.parametrize(
    "scheme",
    ["postgres://", "postgresql://", "postgresql+psycopg2://", "postgresql+psycopg://"],
)
def test_sync_schemes_are_rewritten_for_asyncpg(scheme):
    url = db._normalize_asyncpg_url(f"{scheme}u:p@h:5432/d?sslmode=require")
    assert url == "postgresql+asyncpg://u:p@h:5432/d?ssl=require"


def test_database_url_prefers_explicit_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://a:b@db:5432/plans")
    assert db._get_database_url() == "postgresql+asyncpg://a:b@db:5432/plans"


def test_database_url_from_postgres_parts(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("POSTGRES_USER", "u")
    monkeypatch.setenv("POSTGRES_PASSWORD", "p")
    monkeypatch.setenv("POSTGRES_DB", "plans")
    monkeypatch.setenv("POSTGRES_HOST", "db")
    monkeypatch.delenv("POSTGRES_PORT", raising=False)
    assert db._get_database_url() == "postgresql+asyncpg://u:p@db:5432/plans"


def test_database_url_default(monkeypatch):
    for name in ("DATABASE_URL", "POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_DB"):
        monkeypatch.delenv(name, raising=False)
    assert db._get_database_url() == db.DEFAULT_DATABASE_URL
