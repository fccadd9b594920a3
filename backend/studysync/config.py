"""StudySync application configuration.

Loads settings from two YAML files:
  * studysync.settings.yaml  : non-secret configuration
  * studysync.secrets.yaml   : secrets (never committed)

Either path can be overridden with the ``STUDYSYNC_SETTINGS`` and
``STUDYSYNC_SECRETS`` environment variables. ``JWT_SECRET`` in the
environment wins over the secrets file.
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

SETTINGS_FILE = Path("studysync.settings.yaml")
SECRETS_FILE  = Path("studysync.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "change-me-in-production"


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 3000
    allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])


class DatabaseSettings(BaseModel):
    path: str = "studysync.duckdb"


class AuthSettings(BaseModel):
    algorithm:            str = "HS256"
    token_query_param:    str = "token"
    default_display_name: str = "Unknown"


class RoomSettings(BaseModel):
    max_message_length:    int = 10000
    history_page_size:     int = 50
    history_max_page_size: int = 100
    outbound_queue_size:   int = 256

    @field_validator(
        "max_message_length", "history_page_size", "history_max_page_size", "outbound_queue_size"
    )
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value


class LoggingSettings(BaseModel):
    level: str = "info"


class AppConfig(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth:     AuthSettings     = Field(default_factory=AuthSettings)
    rooms:    RoomSettings     = Field(default_factory=RoomSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    secrets:  Secrets          = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _resolve_db_path(raw: str, settings_path: Path) -> str:
    """Resolve a relative database path against the settings file directory."""
    if raw == ":memory:":
        return raw
    path = Path(raw)
    if path.is_absolute():
        return str(path)
    return str(settings_path.resolve().parent / path)


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppConfig:
    """Load and merge settings + secrets into a single *AppConfig* object."""
    settings_path = Path(
        settings_path or os.environ.get("STUDYSYNC_SETTINGS", SETTINGS_FILE)
    )
    secrets_path = Path(
        secrets_path or os.environ.get("STUDYSYNC_SECRETS", SECRETS_FILE)
    )

    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(secrets_path)

    # Merge: secrets live under the "secrets" key in AppConfig
    settings_data["secrets"] = secrets_data

    config = AppConfig(**settings_data)

    if settings_path.exists():
        config.database.path = _resolve_db_path(config.database.path, settings_path)

    env_secret = os.environ.get("JWT_SECRET")
    if env_secret:
        config.secrets.jwt.secret_key = env_secret

    logger.info(
        "Settings loaded (server=%s:%s, database=%s)",
        config.server.host,
        config.server.port,
        config.database.path,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[AppConfig]) -> None:
    """Replace (or clear, with None) the process-wide config."""
    global _config
    _config = config
