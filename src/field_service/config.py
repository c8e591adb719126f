"""
Configuration management for the field service.

Loads configuration from YAML with ZERO defaults.
Every value must be explicitly specified or startup fails.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

REDACTION_MARKER = "***REDACTED***"

_SENSITIVE_KEY_PARTS: tuple[str, ...] = ("token", "secret", "password", "api_key")


class ServiceConfig(BaseModel):
    """Service identity configuration."""

    model_config = ConfigDict(extra="forbid")
    name: str
    version: str


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(extra="forbid")
    host: str
    port: int
    log_level: str


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")
    level: str
    directory: str


class DatabaseConfig(BaseModel):
    """Database configuration."""

    model_config = ConfigDict(extra="forbid")
    path: str


class RequestConfig(BaseModel):
    """Request handling configuration."""

    model_config = ConfigDict(extra="forbid")
    max_body_size: int


class LocationConfig(BaseModel):
    """Device location capture configuration."""

    model_config = ConfigDict(extra="forbid")
    timeout_seconds: float


class TariffsConfig(BaseModel):
    """Tariff and earnings configuration."""

    model_config = ConfigDict(extra="forbid")
    timezone: str
    currency: str

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown time zone: {value}"
            raise ValueError(msg) from exc
        return value


class ApprovalsConfig(BaseModel):
    """Approval workflow configuration."""

    model_config = ConfigDict(extra="forbid")
    decider_roles: list[str]


class ChatPlatformConfig(BaseModel):
    """Chat/notification platform connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    manager_notify_path: str
    worker_notify_path: str
    timeout_seconds: int
    api_token: str | None = None


class NotificationsConfig(BaseModel):
    """Notification outbox configuration."""

    model_config = ConfigDict(extra="forbid")
    dispatch_batch_size: int
    max_attempts: int


class Settings(BaseModel):
    """
    Root configuration container.

    All fields are REQUIRED. No defaults exist.
    Missing fields cause immediate startup failure.
    """

    model_config = ConfigDict(extra="forbid")
    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    database: DatabaseConfig
    request: RequestConfig
    location: LocationConfig
    tariffs: TariffsConfig
    approvals: ApprovalsConfig
    chat_platform: ChatPlatformConfig
    notifications: NotificationsConfig


def get_config_path() -> Path:
    """Determine configuration file path (CONFIG_PATH env var, else ./config.yaml)."""
    configured = os.environ.get("CONFIG_PATH")
    if configured:
        return Path(configured)
    return Path.cwd() / "config.yaml"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and cache settings from the YAML configuration file."""
    config_path = get_config_path()
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with config_path.open(encoding="utf-8") as handle:
        raw = yaml.safe_load(handle)

    if not isinstance(raw, dict):
        msg = f"Configuration file must contain a mapping: {config_path}"
        raise ValueError(msg)

    return Settings.model_validate(raw)


def clear_settings_cache() -> None:
    """Drop cached settings so the next get_settings() re-reads the file."""
    get_settings.cache_clear()


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        redacted: dict[str, Any] = {}
        for key, item in value.items():
            if item is not None and any(part in key.lower() for part in _SENSITIVE_KEY_PARTS):
                redacted[key] = REDACTION_MARKER
            else:
                redacted[key] = _redact(item)
        return redacted
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


def get_safe_config() -> dict[str, Any]:
    """Get configuration with sensitive values redacted."""
    result: dict[str, Any] = _redact(get_settings().model_dump())
    return result
