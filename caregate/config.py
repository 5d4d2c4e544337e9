"""Caregate configuration management with environment variable overrides.

Priority order for configuration values:
1. YAML config file (explicit path, else <config dir>/config.yaml)
2. Environment variables (CAREGATE_*, nested with ``__``) and .env
3. StoragePathResolver for paths
4. Pydantic defaults (lowest priority)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from caregate.gateway.twilio import DEFAULT_API_BASE, DEFAULT_VOICE_URL
from caregate.storage.path_resolver import get_default_resolver

logger = logging.getLogger(__name__)


class StorageConfig(BaseModel):
    """Key-value store configuration.

    Attributes:
        backend: Store implementation (duckdb, memory)
        path: DuckDB database file
    """

    backend: Literal["duckdb", "memory"] = "duckdb"
    path: Path | None = None  # Will be resolved by model_validator

    @model_validator(mode="after")
    def resolve_paths(self) -> StorageConfig:
        """Resolve database path using StoragePathResolver."""
        if self.path is None:
            self.path = get_default_resolver().get_database_path()
        return self


class TwilioConfig(BaseModel):
    """Twilio credentials and request settings.

    Attributes:
        account_sid: Twilio account SID
        auth_token: Twilio auth token
        from_number: Number texts and calls are sent from
        api_base: REST API base URL
        voice_url: TwiML document played on emergency calls
        timeout_seconds: Per-request timeout
    """

    account_sid: str | None = None
    auth_token: SecretStr | None = None
    from_number: str | None = None
    api_base: str = DEFAULT_API_BASE
    voice_url: str = DEFAULT_VOICE_URL
    timeout_seconds: float = Field(default=10.0, gt=0)


class AlertingConfig(BaseModel):
    """Caregiver alert tuning.

    Attributes:
        debounce_seconds: Delay that collapses bursts of blocked attempts
        recent_violation_limit: Violations listed in an alert message
        preview_length: Characters of text preview per violation
        delivery_timeout_seconds: Upper bound on one alert delivery
    """

    debounce_seconds: float = Field(default=1.0, ge=0)
    recent_violation_limit: int = Field(default=5, ge=0)
    preview_length: int = Field(default=30, ge=4)
    delivery_timeout_seconds: float = Field(default=30.0, gt=0)


class CaregateConfig(BaseSettings):
    """Main Caregate configuration.

    Attributes:
        storage: Key-value store configuration
        twilio: Messaging gateway configuration
        alerting: Caregiver alert tuning
        timezone: IANA zone for quiet hours and message times (system local if unset)
        log_level: Root log level for the CLI
    """

    storage: StorageConfig = Field(default_factory=StorageConfig)
    twilio: TwilioConfig = Field(default_factory=TwilioConfig)
    alerting: AlertingConfig = Field(default_factory=AlertingConfig)

    timezone: str | None = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        env_prefix="caregate_",
        extra="ignore",
    )


def load_config_from_file(config_path: str) -> dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary (empty if the file is missing or unreadable)
    """
    path = Path(config_path).expanduser()
    if not path.exists():
        logger.warning(f"Config file not found: {config_path}")
        return {}

    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return {}

    if not isinstance(config, dict):
        logger.error(f"Config file {config_path} does not contain a mapping")
        return {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def default_config_path() -> Path:
    """Location of the per-user YAML config file."""
    return get_default_resolver().get_config_dir() / "config.yaml"


def get_config(config_path: str | None = None) -> CaregateConfig:
    """Get configuration instance.

    Args:
        config_path: Optional path to YAML config file; when omitted the
            per-user config file is used if it exists

    Returns:
        CaregateConfig instance
    """
    if not config_path and default_config_path().exists():
        config_path = str(default_config_path())

    if config_path:
        file_config = load_config_from_file(config_path)
        return CaregateConfig(**file_config)

    return CaregateConfig()
