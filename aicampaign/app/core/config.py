from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Database settings. PostgreSQL (asyncpg) in production, SQLite for local runs.
    database_url: str = Field(
        default="sqlite+aiosqlite:///./aicampaign.db",
        validation_alias="DATABASE_URL",
    )

    # Connection pool settings (ignored for SQLite)
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 300
    db_pool_pre_ping: bool = True
    db_command_timeout: float = 30.0

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Redis settings. When disabled, an in-process cache is used (single instance only).
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"

    # Campaign quota settings
    campaign_status_ttl_seconds: int = 300  # Status view read-through TTL (5 minutes)
    slot_reservation_ttl_seconds: int = 1800  # Reservation lease (30 minutes)

    # Slot reconciliation sweep (reclaims slots of expired reservations)
    campaign_reconcile_enabled: bool = False
    campaign_reconcile_interval_seconds: int = 300

    @field_validator("db_pool_size", "db_max_overflow")
    @classmethod
    def validate_pool_size_positive(cls, v: int) -> int:
        """Validate pool_size is positive."""
        if v < 1:
            raise ValueError("pool size values must be at least 1")
        return v

    @field_validator("campaign_status_ttl_seconds", "slot_reservation_ttl_seconds")
    @classmethod
    def validate_ttl_positive(cls, v: int) -> int:
        """Validate cache TTLs are positive."""
        if v < 1:
            raise ValueError("TTL values must be at least 1 second")
        return v

    @field_validator("campaign_reconcile_interval_seconds")
    @classmethod
    def validate_reconcile_interval(cls, v: int) -> int:
        """Validate reconcile interval is reasonable."""
        if v < 10:
            raise ValueError(
                "campaign_reconcile_interval_seconds should be at least 10 seconds"
            )
        if v > 3600:
            raise ValueError(
                "campaign_reconcile_interval_seconds should not exceed 1 hour"
            )
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
