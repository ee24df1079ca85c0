"""
Centralized settings for quotesync.

All fields can be set via ``QUOTESYNC_*`` environment variables (e.g.
``QUOTESYNC_BASE_URL=https://quotes.example.org``) or a ``.env`` file.

Examples:
    >>> from quotesync.core.settings import QuoteSyncSettings
    >>> settings = QuoteSyncSettings(base_url="http://localhost:5000", retry_delay=0)
    >>> settings.api_url
    'http://localhost:5000/api'

Tags:
    settings, configuration, pydantic, environment, quotesync
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from quotesync.core.errors import ConfigError


class QuoteSyncSettings(BaseSettings):
    """quotesync client configuration.

    Fields
    ──────
    base_url                 : Root URL of the remote quote store
    api_prefix               : Path prefix for the record endpoints
    request_timeout          : Per-request timeout in seconds
    retry_attempts           : Retries after the first attempt on transport failures
    retry_delay              : Fixed delay between retries, in seconds
    poll_interval            : Connectivity probe interval, in seconds
    data_dir                 : Directory for the durable local store
    store_path               : SQLite file (defaults to ``data_dir/store.db``)
    deleted_history_capacity : Size of the recently-deleted ring
    temp_id_prefix           : Namespace prefix for temporary ids
    log_level / log_format   : structlog configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="QUOTESYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Remote ───────────────────────────────────────────────────
    base_url: str = Field(default="http://localhost:5000")
    api_prefix: str = Field(default="/api")
    request_timeout: float = Field(default=10.0)

    # ── Retry / connectivity ─────────────────────────────────────
    retry_attempts: int = Field(default=2)
    retry_delay: float = Field(default=1.0)
    poll_interval: float = Field(default=30.0)

    # ── Local store ──────────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".quotesync",
        description="Per-user persistent data directory",
    )
    store_path: Path | None = Field(default=None)
    deleted_history_capacity: int = Field(default=10)
    temp_id_prefix: str = Field(default="temp_")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @model_validator(mode="after")
    def _validate_bounds(self) -> QuoteSyncSettings:
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.retry_attempts < 0:
            raise ValueError("retry_attempts must be >= 0")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be >= 0")
        if self.deleted_history_capacity < 1:
            raise ValueError("deleted_history_capacity must be >= 1")
        if not self.temp_id_prefix:
            raise ValueError("temp_id_prefix must not be empty")
        if self.log_format not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return self

    # ── Derived properties ───────────────────────────────────────

    @property
    def api_url(self) -> str:
        base = self.base_url.rstrip("/")
        prefix = self.api_prefix.strip("/")
        return f"{base}/{prefix}" if prefix else base

    @property
    def resolved_store_path(self) -> Path:
        return self.store_path or self.data_dir / "store.db"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, QuoteSyncSettings] = {}


def get_settings(*, _force_reload: bool = False) -> QuoteSyncSettings:
    """Load, validate, and cache a :class:`QuoteSyncSettings` instance.

    Raises:
        ConfigError: if the environment holds an invalid value
    """
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    try:
        settings = QuoteSyncSettings()
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "settings"
        raise ConfigError(f"Invalid setting {field}: {first['msg']}", cause=e) from e
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
