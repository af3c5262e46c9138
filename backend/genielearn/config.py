"""GenieLearn application configuration.

Loads settings from two YAML files:
  * genielearn.settings.yaml: non-secret configuration
  * genielearn.secrets.yaml: secrets (never committed)

Either path can be overridden with the GENIELEARN_SETTINGS and
GENIELEARN_SECRETS environment variables.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("genielearn.settings.yaml")
SECRETS_FILE  = Path("genielearn.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class SessionSecrets(BaseModel):
    # Mixed into every stored session-token hash.
    token_pepper: str = "change-me-in-production"


class Secrets(BaseModel):
    session: SessionSecrets = Field(default_factory=SessionSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str  = "0.0.0.0"
    port:            int  = 8000
    reload:          bool = False
    allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])


class LoggingSettings(BaseModel):
    level: str = "info"


class DatabaseSettings(BaseModel):
    path: str = "genielearn.duckdb"


class AuthSettings(BaseModel):
    cookie_name:         str = "genielearn_session"
    session_ttl_minutes: int = 60 * 24 * 7


class ChatSettings(BaseModel):
    """Server-side chat delivery settings."""
    # Per-connection budget for one broadcast send
    send_timeout_seconds: float = 5.0

    @field_validator("send_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("send_timeout_seconds must be positive")
        return v


class ClientSettings(BaseModel):
    """Defaults for the Python chat client."""
    batch_size:               int   = 100
    history_cap:              int   = 5000
    poll_interval_seconds:    float = 5.0
    reconcile_window_seconds: float = 10.0
    reconnect_delay_seconds:  float = 1.0


class AppSettings(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth:     AuthSettings     = Field(default_factory=AuthSettings)
    chat:     ChatSettings     = Field(default_factory=ChatSettings)
    client:   ClientSettings   = Field(default_factory=ClientSettings)
    secrets:  Secrets          = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_path = settings_path or Path(os.environ.get("GENIELEARN_SETTINGS", SETTINGS_FILE))
    secrets_path  = secrets_path or Path(os.environ.get("GENIELEARN_SECRETS", SECRETS_FILE))

    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(secrets_path)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, database=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.database.path,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def reset_config() -> None:
    """Drop the cached settings (for testing)."""
    global _config
    _config = None
