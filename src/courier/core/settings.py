"""
Centralized settings for courier.

All fields can be set through ``COURIER_*`` environment variables (e.g.
``COURIER_ENDPOINT_URL=https://example.org/``) or a ``.env`` file.
Defaults reproduce the reference deployment: 15 s live deadline, 15 s
retry interval, 12 s recovery deadline, two immediate attempts.

Example::

    from courier.core.settings import get_settings

    settings = get_settings()
    settings.retry_interval      # 15.0

Tags:
    courier, configuration, settings, pydantic
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from courier.core.errors import ConfigError


class StorageBackend(str, Enum):
    """Supported key-value store backends for the durable slot."""

    SQLITE = "sqlite"
    FILE = "file"
    MEMORY = "memory"


class LogFormat(str, Enum):
    """Log renderer selection."""

    JSON = "json"
    CONSOLE = "console"


class CourierSettings(BaseSettings):
    """Courier configuration.

    Fields
    ──────
    endpoint_url        : Delivery endpoint (HTTP POST target)
    form_name           : Value of the ``form-name`` form field
    live_timeout        : Deadline for attempts made for a live payload
    recovery_timeout    : Deadline for the startup recovery attempt
    retry_interval      : Fixed interval between scheduled retries
    immediate_attempts  : Attempts made before falling back to the slot
    slot_key            : Reserved key of the durable slot
    storage_backend     : sqlite | file | memory
    data_dir            : Directory for the sqlite/file stores
    probe_url           : Connectivity probe target (None disables the monitor)
    probe_interval      : Seconds between connectivity probes
    """

    model_config = SettingsConfigDict(
        env_prefix="COURIER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Delivery ─────────────────────────────────────────────────
    endpoint_url: str = Field(default="http://localhost:8888/")
    form_name: str = Field(default="experiment-data")
    live_timeout: float = Field(default=15.0, gt=0)
    recovery_timeout: float = Field(default=12.0, gt=0)

    # ── Retry ────────────────────────────────────────────────────
    retry_interval: float = Field(default=15.0, gt=0)
    immediate_attempts: int = Field(default=2, ge=0, le=2)

    # ── Storage ──────────────────────────────────────────────────
    slot_key: str = Field(default="pending_submission_v1", min_length=1)
    storage_backend: StorageBackend = Field(default=StorageBackend.SQLITE)
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".courier",
        description="Directory holding the durable slot store",
    )

    # ── Reachability ─────────────────────────────────────────────
    probe_url: str | None = Field(default=None)
    probe_interval: float = Field(default=5.0, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default=LogFormat.CONSOLE)

    @field_validator("endpoint_url")
    @classmethod
    def _check_endpoint(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"endpoint_url must be an http(s) URL, got {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @property
    def sqlite_path(self) -> Path:
        return self.data_dir / "courier.db"


_settings: CourierSettings | None = None


def load_settings(**overrides: Any) -> CourierSettings:
    """Build settings from the environment plus explicit ``overrides``.

    ``None`` overrides are ignored so optional CLI flags can be passed
    straight through.

    Raises:
        ConfigError: If any value fails validation
    """
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return CourierSettings(**values)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ConfigError(
            f"Invalid courier configuration: {e.error_count()} error(s) in {', '.join(fields)}",
            cause=e,
            fields=fields,
        ) from e


def get_settings() -> CourierSettings:
    """Load, validate, and cache a :class:`CourierSettings` instance.

    Raises:
        ConfigError: If the environment holds invalid values
    """
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Clear the settings cache (primarily for testing)."""
    global _settings
    _settings = None


__all__ = [
    "CourierSettings",
    "LogFormat",
    "StorageBackend",
    "get_settings",
    "load_settings",
    "reset_settings",
]
