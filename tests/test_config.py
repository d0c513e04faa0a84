import pytest
from pydantic import ValidationError

from aicampaign.app.core.config import Settings


def test_defaults(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    settings = Settings(_env_file=None)

    assert settings.database_url == "sqlite+aiosqlite:///./aicampaign.db"
    assert settings.redis_enabled is False
    assert settings.campaign_status_ttl_seconds == 300
    assert settings.slot_reservation_ttl_seconds == 1800
    assert settings.campaign_reconcile_enabled is False
    assert settings.campaign_reconcile_interval_seconds == 300


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://user:pw@db/campaigns")
    monkeypatch.setenv("REDIS_ENABLED", "true")
    monkeypatch.setenv("CAMPAIGN_RECONCILE_ENABLED", "1")
    monkeypatch.setenv("LOG_FORMAT", "JSON")

    settings = Settings(_env_file=None)

    assert settings.database_url == "postgresql+asyncpg://user:pw@db/campaigns"
    assert settings.redis_enabled is True
    assert settings.campaign_reconcile_enabled is True
    assert settings.log_format == "json"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("CAMPAIGN_RECONCILE_INTERVAL_SECONDS", "5"),
        ("CAMPAIGN_RECONCILE_INTERVAL_SECONDS", "7200"),
        ("SLOT_RESERVATION_TTL_SECONDS", "0"),
        ("CAMPAIGN_STATUS_TTL_SECONDS", "-1"),
        ("LOG_FORMAT", "xml"),
        ("DB_POOL_SIZE", "0"),
    ],
)
def test_invalid_values(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
