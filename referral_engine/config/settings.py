"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from decimal import Decimal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Redis (dramatiq broker)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Commission distribution
    commission_max_levels: int = Field(
        default=3, ge=1, le=3, description="Maximum referral depth paid out"
    )
    legacy_dedup_window_seconds: int = Field(
        default=600,
        ge=0,
        description=(
            "Window used to match deposit events without a source event id "
            "against already distributed commissions"
        ),
    )

    # Reconciliation
    reconcile_epsilon: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Tolerated absolute difference between ledger and stored totals",
    )
    reconcile_batch_size: int = Field(
        default=500, ge=1, description="Users scanned per reconciliation page"
    )

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/referral_engine.log"
    log_rotation: str = "1 day"
    log_retention: str = "7 days"

    environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(
            ('postgresql://', 'postgresql+asyncpg://', 'sqlite+aiosqlite://')
        ):
            raise ValueError(
                'DATABASE_URL must start with postgresql+asyncpg:// '
                '(or sqlite+aiosqlite:// for local runs)'
            )
        if v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f'Unknown log level: {v}')
        return level


# Global settings instance
settings = Settings()
