"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _read_secret_file(path: str) -> str:
    try:
        content = Path(path).expanduser().read_text(encoding="utf-8").strip()
    except OSError as exc:
        msg = f"Could not read secret file '{path}'"
        raise ValueError(msg) from exc
    if not content:
        msg = f"Secret file '{path}' is empty"
        raise ValueError(msg)
    return content


class Settings(BaseSettings):
    """
    Application settings.

    All settings can be overridden via environment variables.
    For example, DATABASE_URL env var sets the DATABASE_URL field.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Database
    # =========================================================================
    DATABASE_URL: str = Field(
        default="postgresql+asyncpg://postgres@localhost:5432/campus_pulse",
        description="Async PostgreSQL connection string",
    )
    DATABASE_URL_FILE: str | None = Field(
        default=None,
        description="Path to file containing DATABASE_URL",
    )
    DATABASE_URL_SYNC: str = Field(
        default="",
        description="Sync PostgreSQL connection string (for Alembic); derived if empty",
    )
    DATABASE_URL_SYNC_FILE: str | None = Field(
        default=None,
        description="Path to file containing DATABASE_URL_SYNC",
    )
    DATABASE_POOL_SIZE: int = Field(default=10, ge=1, le=100)
    DATABASE_MAX_OVERFLOW: int = Field(default=20, ge=0, le=100)
    DATABASE_POOL_TIMEOUT_SECONDS: int = Field(
        default=30,
        ge=1,
        le=600,
        description="Seconds to wait for a DB connection from pool before timing out",
    )

    # =========================================================================
    # Redis
    # =========================================================================
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    REDIS_URL_FILE: str | None = Field(
        default=None,
        description="Path to file containing REDIS_URL",
    )

    # =========================================================================
    # Remote classifier (OpenAI-compatible)
    # =========================================================================
    OPENAI_API_KEY: str = Field(
        default="",
        description="API key for the primary remote classifier; empty disables model escalation",
    )
    OPENAI_API_KEY_FILE: str | None = Field(
        default=None,
        description="Path to file containing OPENAI_API_KEY",
    )
    LLM_PRIMARY_PROVIDER: str = Field(
        default="openai",
        description="Primary LLM provider identifier for logging/routing",
    )
    LLM_PRIMARY_BASE_URL: str | None = Field(
        default=None,
        description="Optional base URL for OpenAI-compatible primary provider endpoints",
    )
    LLM_SECONDARY_PROVIDER: str | None = Field(
        default=None,
        description="Secondary LLM provider identifier for failover routing/logging",
    )
    LLM_SECONDARY_BASE_URL: str | None = Field(
        default=None,
        description="Optional base URL for OpenAI-compatible secondary provider endpoints",
    )
    LLM_SECONDARY_API_KEY: str | None = Field(
        default=None,
        description="API key for the secondary provider; falls back to OPENAI_API_KEY",
    )
    LLM_SECONDARY_API_KEY_FILE: str | None = Field(
        default=None,
        description="Path to file containing LLM_SECONDARY_API_KEY",
    )
    LLM_TRIAGE_MODEL: str = Field(
        default="gpt-4.1-nano",
        description="Model used for spam, location and urgency escalations",
    )
    LLM_TRIAGE_SECONDARY_MODEL: str | None = Field(
        default=None,
        description="Failover model for triage escalations on the secondary route",
    )
    LLM_ANALYSIS_MODEL: str = Field(
        default="gpt-4.1-mini",
        description="Model used for the out-of-band holistic analysis",
    )
    LLM_ROUTE_RETRY_ATTEMPTS: int = Field(
        default=2,
        ge=1,
        le=5,
        description="Attempts per LLM route before failing over",
    )
    LLM_ROUTE_RETRY_BACKOFF_SECONDS: float = Field(
        default=0.25,
        ge=0.0,
        le=10.0,
        description="Linear backoff step between LLM route retries",
    )

    @field_validator("LLM_PRIMARY_BASE_URL", "LLM_SECONDARY_BASE_URL", mode="before")
    @classmethod
    def parse_optional_llm_base_urls(cls, value: Any) -> str | None:
        """Normalize optional LLM base URL values."""
        if value is None:
            return None
        if isinstance(value, str):
            normalized = value.strip()
            return normalized or None
        return str(value).strip() or None

    # =========================================================================
    # Triage
    # =========================================================================
    TRIAGE_LLM_TIMEOUT_SECONDS: float = Field(
        default=8.0,
        gt=0.0,
        le=120.0,
        description="Per-call timeout for remote classifier requests; timeouts use the fast path",
    )
    TRIAGE_MAX_INPUT_TOKENS: int = Field(
        default=1200,
        ge=64,
        description="Approximate token ceiling for untrusted report payloads sent to the model",
    )
    TRIAGE_FULL_ANALYSIS_ENABLED: bool = Field(
        default=True,
        description="Schedule holistic re-analysis when triage flags it as needed",
    )

    # =========================================================================
    # Celery
    # =========================================================================
    CELERY_BROKER_URL: str = Field(default="redis://localhost:6379/1")
    CELERY_BROKER_URL_FILE: str | None = Field(
        default=None,
        description="Path to file containing CELERY_BROKER_URL",
    )
    CELERY_RESULT_BACKEND: str = Field(default="redis://localhost:6379/2")
    CELERY_RESULT_BACKEND_FILE: str | None = Field(
        default=None,
        description="Path to file containing CELERY_RESULT_BACKEND",
    )
    DEAD_LETTER_REDIS_KEY: str = Field(
        default="campus_pulse:dead_letter",
        description="Redis list receiving payloads of permanently failed tasks",
    )
    DEAD_LETTER_MAX_ITEMS: int = Field(default=1000, ge=1)
    PRIORITY_RECALC_INTERVAL_MINUTES: int = Field(
        default=15,
        ge=1,
        description="Interval for refreshing priority of open issues as frequency windows age",
    )
    PRIORITY_RECALC_BATCH_SIZE: int = Field(default=200, ge=1, le=5000)
    WORKER_HEARTBEAT_REDIS_KEY: str = Field(default="campus_pulse:worker:last_activity")
    WORKER_HEARTBEAT_TTL_SECONDS: int = Field(default=900, ge=60)

    # =========================================================================
    # Environment / logging
    # =========================================================================
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )
    SQL_ECHO: bool = Field(
        default=False,
        description="Log SQL statements from SQLAlchemy engine",
    )
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json", description="json or console")

    @field_validator("LOG_FORMAT", mode="before")
    @classmethod
    def parse_log_format(cls, value: Any) -> str:
        normalized = str(value or "json").strip().lower()
        if normalized not in {"json", "console"}:
            msg = "LOG_FORMAT must be 'json' or 'console'"
            raise ValueError(msg)
        return normalized

    # =========================================================================
    # Integration test guards
    # =========================================================================
    INTEGRATION_DB_TRUNCATE_ALLOWED: bool = Field(
        default=False,
        description="Allow integration tests to truncate tables in the configured database",
    )
    INTEGRATION_DB_ALLOW_REMOTE: bool = Field(
        default=False,
        description="Allow truncation against a non-local database host",
    )

    @model_validator(mode="after")
    def _load_secret_file_values(self) -> Settings:
        secret_mappings = {
            "DATABASE_URL": self.DATABASE_URL_FILE,
            "DATABASE_URL_SYNC": self.DATABASE_URL_SYNC_FILE,
            "REDIS_URL": self.REDIS_URL_FILE,
            "OPENAI_API_KEY": self.OPENAI_API_KEY_FILE,
            "LLM_SECONDARY_API_KEY": self.LLM_SECONDARY_API_KEY_FILE,
            "CELERY_BROKER_URL": self.CELERY_BROKER_URL_FILE,
            "CELERY_RESULT_BACKEND": self.CELERY_RESULT_BACKEND_FILE,
        }
        for target_field, file_path in secret_mappings.items():
            if not file_path:
                continue
            setattr(self, target_field, _read_secret_file(file_path))
        return self

    @model_validator(mode="after")
    def _derive_database_url_sync(self) -> Settings:
        if self.DATABASE_URL.startswith("postgresql://"):
            # Runtime engines use asyncpg; normalize common sync-style URLs.
            self.DATABASE_URL = self.DATABASE_URL.replace(
                "postgresql://",
                "postgresql+asyncpg://",
                1,
            )
        if not self.DATABASE_URL_SYNC.strip():
            self.DATABASE_URL_SYNC = self.DATABASE_URL.replace("postgresql+asyncpg", "postgresql")
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def effective_log_level(self) -> str:
        """Production never logs below INFO."""
        level = self.LOG_LEVEL.strip().upper() or "INFO"
        if self.is_production and level == "DEBUG":
            return "INFO"
        return level

    @property
    def remote_classifier_configured(self) -> bool:
        return bool(self.OPENAI_API_KEY.strip())


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience instance
settings = get_settings()
