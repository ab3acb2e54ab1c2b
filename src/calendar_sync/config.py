"""Environment-driven configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


def _env(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


def _env_float(key: str, default: float) -> float:
    raw = _env(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    raw = _env(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class CosmosConfig:
    endpoint: str = field(default_factory=lambda: _env("COSMOS_ENDPOINT"))
    key: str = field(default_factory=lambda: _env("COSMOS_KEY"))
    database: str = field(default_factory=lambda: _env("COSMOS_DATABASE", "calendar-sync"))


@dataclass(frozen=True)
class StorageConfig:
    connection_string: str = field(default_factory=lambda: _env("AZURE_STORAGE_CONNECTION_STRING"))
    account_url: str = field(default_factory=lambda: _env("AZURE_STORAGE_ACCOUNT_URL"))
    container: str = field(default_factory=lambda: _env("AZURE_STORAGE_CONTAINER", "uploads"))


@dataclass(frozen=True)
class MonitorConfig:
    connection_string: str = field(
        default_factory=lambda: _env("APPLICATIONINSIGHTS_CONNECTION_STRING")
    )


@dataclass(frozen=True)
class SyncConfig:
    """Timing and limit knobs for the synchronization engine (seconds unless noted)."""

    debounce_seconds: float = field(default_factory=lambda: _env_float("SYNC_DEBOUNCE_SECONDS", 0.05))
    settle_seconds: float = field(default_factory=lambda: _env_float("SYNC_SETTLE_SECONDS", 0.5))
    approval_guard_seconds: float = field(
        default_factory=lambda: _env_float("SYNC_APPROVAL_GUARD_SECONDS", 1.0)
    )
    notification_window_minutes: float = field(
        default_factory=lambda: _env_float("NOTIFICATION_WINDOW_MINUTES", 10.0)
    )
    sweep_retries: int = field(default_factory=lambda: _env_int("SWEEP_RETRIES", 2))
    sweep_base_delay_seconds: float = field(
        default_factory=lambda: _env_float("SWEEP_BASE_DELAY_SECONDS", 0.5)
    )
    poll_interval_seconds: float = field(
        default_factory=lambda: _env_float("CHANGE_FEED_POLL_SECONDS", 1.0)
    )
    max_attachments: int = field(default_factory=lambda: _env_int("MAX_ATTACHMENTS", 5))
    max_upload_bytes: int = field(
        default_factory=lambda: _env_int("MAX_UPLOAD_BYTES", 300 * 1024 * 1024)
    )


@dataclass(frozen=True)
class AppConfig:
    env: str = field(default_factory=lambda: _env("APP_ENV", "development"))
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))
    project_id: str = field(default_factory=lambda: _env("PROJECT_ID"))
    channel: str = field(default_factory=lambda: _env("CHANNEL", "fbig"))
    user_id: str = field(default_factory=lambda: _env("USER_ID", "calendar-sync"))
    user_name: str = field(default_factory=lambda: _env("USER_NAME", "Calendar Sync"))

    @property
    def is_development(self) -> bool:
        return self.env == "development"


@dataclass(frozen=True)
class Settings:
    cosmos: CosmosConfig = field(default_factory=CosmosConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    app: AppConfig = field(default_factory=AppConfig)


def load_settings() -> Settings:
    """Load settings from the environment, reading a local ``.env`` first."""
    load_dotenv()
    return Settings()
