"""WatchSync application configuration.

Loads settings from a single YAML file:
  * watchsync.settings.yaml: relay, sync and reconnect tuning

The file is located via the ``WATCHSYNC_SETTINGS`` environment variable and
falls back to the current working directory. A missing file yields defaults.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("watchsync.settings.yaml")
SETTINGS_ENV_VAR = "WATCHSYNC_SETTINGS"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str  = "0.0.0.0"
    port:            int  = 3001
    reload:          bool = False
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if not isinstance(getattr(logging, value.upper(), None), int):
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class RoomSettings(BaseModel):
    max_participants: int = Field(default=50, ge=0)
    room_id_length:   int = Field(default=8, ge=4, le=32)


class SyncSettings(BaseModel):
    """Client-side reconciliation tuning."""
    drift_threshold_seconds:      float = Field(default=1.0, ge=0)
    suppression_cooldown_seconds: float = Field(default=0.5, ge=0)
    time_update_interval_seconds: float = Field(default=1.0, gt=0)


class ReconnectSettings(BaseModel):
    """Bounded exponential backoff for the relay client."""
    initial_delay_seconds: float = Field(default=1.0, gt=0)
    max_delay_seconds:     float = Field(default=30.0, gt=0)
    multiplier:            float = Field(default=2.0, ge=1)
    jitter:                float = Field(default=0.2, ge=0, le=1)


class ClientSettings(BaseModel):
    server_url: str = "ws://localhost:3001/"


class AppConfig(BaseModel):
    server:    ServerSettings    = Field(default_factory=ServerSettings)
    logging:   LoggingSettings   = Field(default_factory=LoggingSettings)
    rooms:     RoomSettings      = Field(default_factory=RoomSettings)
    sync:      SyncSettings      = Field(default_factory=SyncSettings)
    reconnect: ReconnectSettings = Field(default_factory=ReconnectSettings)
    client:    ClientSettings    = Field(default_factory=ClientSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _resolve_settings_path(settings_path: Optional[Union[str, Path]]) -> Path:
    if settings_path is not None:
        return Path(settings_path)
    env_path = os.environ.get(SETTINGS_ENV_VAR)
    if env_path:
        return Path(env_path)
    return SETTINGS_FILE


def load_config(settings_path: Optional[Union[str, Path]] = None) -> AppConfig:
    """Load the settings file into a fresh *AppConfig* object."""
    path = _resolve_settings_path(settings_path)
    config = AppConfig(**_load_yaml(path))
    logger.info(
        "Settings loaded (server=%s:%s, max_participants=%s, drift_threshold=%ss)",
        config.server.host,
        config.server.port,
        config.rooms.max_participants,
        config.sync.drift_threshold_seconds,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config
    _config = None
