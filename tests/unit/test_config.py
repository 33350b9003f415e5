"""Tests for settings normalization."""

from civiclens.config import Settings


def test_postgres_scheme_rewritten():
    s = Settings(database_url="postgres://u:p@db:5432/civic")
    assert s.database_url == "postgresql+asyncpg://u:p@db:5432/civic"


def test_plain_postgresql_scheme_rewritten():
    s = Settings(database_url="postgresql://u:p@db/civic")
    assert s.database_url.startswith("postgresql+asyncpg://")


def test_sslmode_stripped_and_detected():
    s = Settings(database_url="postgresql://u:p@db/civic?sslmode=require")
    assert s.database_url == "postgresql+asyncpg://u:p@db/civic"
    assert s.database_require_ssl is True


def test_sslmode_disable_does_not_require_ssl():
    s = Settings(database_url="postgresql://u:p@db/civic?sslmode=disable", database_require_ssl=False)
    assert s.database_require_ssl is False


def test_api_key_whitespace_stripped():
    s = Settings(nvidia_api_key="  nvapi-abc\n")
    assert s.nvidia_api_key == "nvapi-abc"


def test_view_defaults():
    s = Settings()
    assert s.rolling_window_days == 30
    assert s.search_default_k == 5
