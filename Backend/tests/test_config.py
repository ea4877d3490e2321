"""
Settings tests.

Run with: pytest tests/test_config.py -v
"""
from datetime import timedelta

from app.core.config import Settings
from app.core.db import engine


def test_pool_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DB_POOL_SIZE", "3")
    monkeypatch.setenv("DB_MAX_OVERFLOW", "7")
    monkeypatch.setenv("DB_POOL_RECYCLE_SECONDS", "600")

    settings = Settings()

    assert settings.db_pool_size == 3
    assert settings.db_max_overflow == 7
    assert settings.db_pool_recycle_seconds == 600


def test_engine_uses_configured_pool():
    settings = Settings()
    assert engine.pool.size() == settings.db_pool_size


def test_business_timezone_and_origins(monkeypatch):
    monkeypatch.setenv("ALLOWED_ORIGINS", "http://a.test, http://b.test,")

    settings = Settings()

    assert settings.business_timezone.utcoffset(None) == timedelta(hours=-3)
    assert settings.allowed_origins_list == ["http://a.test", "http://b.test"]
