from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from campus_pulse.core.config import Settings

pytestmark = pytest.mark.unit


def _write_secret(path: Path, value: str) -> str:
    path.write_text(value, encoding="utf-8")
    return str(path)


def test_settings_loads_openai_key_from_file(tmp_path: Path) -> None:
    secret_path = _write_secret(
        tmp_path / "openai_key.txt",
        "openai-token-from-file\n",  # pragma: allowlist secret
    )

    settings = Settings(
        _env_file=None,
        OPENAI_API_KEY_FILE=secret_path,
    )

    assert settings.OPENAI_API_KEY == "openai-token-from-file"  # pragma: allowlist secret
    assert settings.remote_classifier_configured is True


def test_settings_without_key_disables_remote_classifier() -> None:
    settings = Settings(_env_file=None, OPENAI_API_KEY="   ")

    assert settings.remote_classifier_configured is False


def test_settings_raises_for_empty_secret_file(tmp_path: Path) -> None:
    secret_path = _write_secret(tmp_path / "empty_secret.txt", "\n")

    with pytest.raises(ValidationError, match="Secret file"):
        Settings(
            _env_file=None,
            OPENAI_API_KEY_FILE=secret_path,
        )


def test_settings_raises_for_missing_secret_file(tmp_path: Path) -> None:
    missing_path = tmp_path / "missing_secret.txt"

    with pytest.raises(ValidationError, match="Could not read secret file"):
        Settings(
            _env_file=None,
            OPENAI_API_KEY_FILE=str(missing_path),
        )


def test_settings_derives_sync_url_after_file_load(tmp_path: Path) -> None:
    db_url_path = _write_secret(
        tmp_path / "database_url.txt",
        "postgresql://campus@postgres:5432/campus_pulse\n",
    )

    settings = Settings(
        _env_file=None,
        DATABASE_URL_FILE=db_url_path,
    )

    assert settings.DATABASE_URL.startswith("postgresql+asyncpg://")
    assert settings.DATABASE_URL_SYNC == "postgresql://campus@postgres:5432/campus_pulse"


def test_settings_keeps_explicit_sync_url() -> None:
    settings = Settings(
        _env_file=None,
        DATABASE_URL="postgresql+asyncpg://a@db:5432/x",
        DATABASE_URL_SYNC="postgresql+psycopg2://b@db:5432/x",
    )

    assert settings.DATABASE_URL_SYNC == "postgresql+psycopg2://b@db:5432/x"


def test_settings_normalizes_optional_llm_base_urls() -> None:
    settings = Settings(
        _env_file=None,
        LLM_PRIMARY_BASE_URL="  ",
        LLM_SECONDARY_BASE_URL=" https://llm.internal/v1 ",
    )

    assert settings.LLM_PRIMARY_BASE_URL is None
    assert settings.LLM_SECONDARY_BASE_URL == "https://llm.internal/v1"


def test_settings_rejects_invalid_log_format() -> None:
    with pytest.raises(ValidationError, match="LOG_FORMAT"):
        Settings(_env_file=None, LOG_FORMAT="xml")


def test_settings_normalizes_log_format_case() -> None:
    settings = Settings(_env_file=None, LOG_FORMAT=" Console ")

    assert settings.LOG_FORMAT == "console"


def test_effective_log_level_caps_debug_in_production() -> None:
    production = Settings(_env_file=None, ENVIRONMENT="production", LOG_LEVEL="debug")
    development = Settings(_env_file=None, ENVIRONMENT="development", LOG_LEVEL="debug")

    assert production.effective_log_level == "INFO"
    assert development.effective_log_level == "DEBUG"


def test_settings_rejects_non_positive_triage_timeout() -> None:
    with pytest.raises(ValidationError, match="TRIAGE_LLM_TIMEOUT_SECONDS"):
        Settings(_env_file=None, TRIAGE_LLM_TIMEOUT_SECONDS=0)
