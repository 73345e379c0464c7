"""Application configuration settings.

This module provides the AppConfig class and settings singleton.
"""

from pathlib import Path

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nexus_chat.config.env_loader import Environment, get_environment, load_env_files
from nexus_chat.config.validators import (
    resolve_path,
    validate_log_format,
    validate_log_level,
    validate_provider_name,
)

log = structlog.get_logger(__name__)


class AppConfig(BaseSettings):
    """Unified application configuration.

    Loads configuration from environment variables (``NEXUS_`` prefix), .env
    files and defaults. Validates all values using Pydantic.
    """

    model_config = SettingsConfigDict(
        # .env files are loaded manually via env_loader to support
        # environment-specific files with priority order.
        env_prefix="NEXUS_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    environment: Environment = Field(
        default_factory=get_environment, description="Current environment"
    )
    debug: bool = Field(default=False, description="Debug mode flag; console logs at DEBUG")

    # Telemetry
    log_dir: Path = Field(default=Path("telemetry/logs"), description="Log directory path")
    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="console", description="Console log format (json or console)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        return validate_log_level(v)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        return validate_log_format(v)

    @field_validator("log_dir", mode="before")
    @classmethod
    def resolve_paths(cls, v: Path | str) -> Path:
        """Resolve relative paths to absolute."""
        return resolve_path(v)

    # LLM provider
    llm_provider: str = Field(default="openai", description="Active model provider name")
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1", description="Base URL for the OpenAI-compatible API"
    )
    openai_model: str = Field(default="gpt-4o-mini", description="Model used for chat turns")
    gemini_api_key: str | None = Field(default=None, description="Gemini API key")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL for the Gemini API",
    )
    gemini_model: str = Field(default="gemini-2.5-flash", description="Gemini chat model")
    llm_timeout_seconds: int = Field(default=120, ge=1, description="Request read timeout")

    @field_validator("llm_provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Normalize provider name."""
        return validate_provider_name(v)

    def provider_api_key(self, provider: str) -> str | None:
        """Return the configured key for a provider, or None if it has none."""
        keys = {"openai": self.openai_api_key, "gemini": self.gemini_api_key}
        return keys.get(provider.lower())

    # Conversation orchestrator
    chat_max_iterations: int = Field(
        default=5,
        ge=1,
        description="Maximum tool-call rounds per user turn (prevents tool loops)",
    )
    chat_flush_interval_ms: int = Field(
        default=30, ge=0, description="Minimum delay between streamed render updates"
    )
    chat_clear_grace_ms: int = Field(
        default=250,
        ge=0,
        description="Delay before the in-flight view is dropped after a turn completes",
    )
    chat_session_list_limit: int = Field(
        default=50, ge=1, description="Sessions pushed to subscribers, newest first"
    )
    chat_title_max_length: int = Field(
        default=50, ge=1, description="Session title length derived from the first message"
    )


_settings: AppConfig | None = None


def load_app_config() -> AppConfig:
    """Load and validate application configuration.

    This function:
    1. Loads .env files in priority order (via env_loader)
    2. Creates AppConfig instance (reads from environment variables)
    3. Validates all values using Pydantic

    Returns:
        Validated AppConfig instance.

    Raises:
        ValidationError: If configuration validation fails.
    """
    log.info("loading_app_config", environment=get_environment().value)

    load_env_files()

    try:
        config = AppConfig()
        log.info(
            "app_config_loaded",
            environment=config.environment.value,
            debug=config.debug,
            log_level=config.log_level,
            log_format=config.log_format,
            llm_provider=config.llm_provider,
            provider_key_configured=config.provider_api_key(config.llm_provider) is not None,
        )
        return config
    except Exception as e:
        log.error("app_config_load_failed", error=str(e), error_type=type(e).__name__)
        raise


def get_settings() -> AppConfig:
    """Get the application settings singleton.

    Returns:
        AppConfig instance (singleton pattern).
    """
    global _settings
    if _settings is None:
        _settings = load_app_config()
    return _settings
