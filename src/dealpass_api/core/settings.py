from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production", "test"] = "development"
    service_name: str = "dealpass-api"
    database_url: str = "sqlite+aiosqlite:///./dealpass.db"
    database_echo: bool = False

    # Tracing
    tracing_enabled: bool = False

    # Plan quotas at or above this value are treated as unlimited
    unlimited_redemptions_threshold: int = Field(default=999_999, ge=1)

    # Redemption consistency sweeps
    redemption_reconciliation_worker_enabled: bool = False
    redemption_reconciliation_interval_seconds: int = 900
    redemption_reconciliation_limit: int = 200
    redemption_reconciliation_repair: bool = False
    redemption_reconciliation_trigger_label: str = "worker"
    # Items redeemed more recently than this may still be writing their record
    redemption_reconciliation_grace_seconds: int = Field(default=300, ge=0)

    # Operator endpoints (observability, reconciliation)
    operator_api_key: str | None = None

    # Wallet / history listing
    redemption_history_page_size: int = Field(default=50, ge=1, le=500)

    @field_validator("database_url")
    @classmethod
    def _normalize_database_url(cls, value: str) -> str:
        if value.startswith("postgres://"):
            return value.replace("postgres://", "postgresql+asyncpg://", 1)
        if value.startswith("postgresql://"):
            return value.replace("postgresql://", "postgresql+asyncpg://", 1)
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
