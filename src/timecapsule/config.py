"""
Configuration for Timecapsule.

Settings come from an optional YAML file, then environment variables
override individual fields:

    TIMECAPSULE_DB_PATH          local SQLite file
    TIMECAPSULE_NAMESPACE        local slot holding the collection
    TIMECAPSULE_REMOTE_URL       remote project URL (fallback: SUPABASE_URL)
    TIMECAPSULE_REMOTE_KEY       remote API key (fallback: SUPABASE_ANON_KEY)
    TIMECAPSULE_REMOTE_TABLE     remote table name
    TIMECAPSULE_REMOTE_TIMEOUT   seconds before a remote call is abandoned
    TIMECAPSULE_LOG_LEVEL        debug, info, warning or error

A missing remote URL or key is a normal mode: the app runs local-only.
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from timecapsule.errors import ConfigError
from timecapsule.identity import SESSION_KEY

log = structlog.get_logger(__name__)

# Environment variable -> settings field
ENV_OVERRIDES = {
    "TIMECAPSULE_DB_PATH": "db_path",
    "TIMECAPSULE_NAMESPACE": "namespace",
    "TIMECAPSULE_REMOTE_URL": "remote_url",
    "TIMECAPSULE_REMOTE_KEY": "remote_key",
    "TIMECAPSULE_REMOTE_TABLE": "remote_table",
    "TIMECAPSULE_REMOTE_TIMEOUT": "remote_timeout_seconds",
    "TIMECAPSULE_LOG_LEVEL": "log_level",
}

# Used only when the TIMECAPSULE_ variant is unset
ENV_FALLBACKS = {
    "SUPABASE_URL": "remote_url",
    "SUPABASE_ANON_KEY": "remote_key",
}


class Settings(BaseModel):
    """
    Runtime settings.

    Attributes:
        db_path: Path to the local SQLite file
        namespace: Local slot name holding the serialized collection
        remote_url: Base URL of the remote project (None = local-only)
        remote_key: API key for the remote project (None = local-only)
        remote_table: Remote table holding one row per capsule
        remote_timeout_seconds: Upper bound on any single remote call
        log_level: Minimum level for log output
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    db_path: Path = Field(default=Path("timecapsule.db"))
    namespace: str = Field(default="capsules", min_length=1)
    remote_url: str | None = Field(default=None)
    remote_key: str | None = Field(default=None)
    remote_table: str = Field(default="capsules", min_length=1)
    remote_timeout_seconds: float = Field(default=5.0, gt=0, le=60)
    log_level: str = Field(default="warning", pattern="^(debug|info|warning|error)$")

    @field_validator("namespace")
    @classmethod
    def namespace_not_session_slot(cls, v: str) -> str:
        """Keep the collection out of the slot holding the login session."""
        if v == SESSION_KEY:
            raise ValueError(f"'{SESSION_KEY}' is reserved for the login session")
        return v

    @property
    def remote_configured(self) -> bool:
        """Whether both remote URL and key are present."""
        return bool(self.remote_url) and bool(self.remote_key)


def load_settings(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """
    Load settings from an optional YAML file plus environment overrides.

    Args:
        path: YAML file to read; skipped when None
        env: Environment mapping (defaults to os.environ)

    Returns:
        Validated Settings

    Raises:
        ConfigError: If the file is unreadable or values are invalid
    """
    env = os.environ if env is None else env
    data: dict[str, Any] = {}
    source = "environment"

    if path is not None:
        path = Path(path)
        source = str(path)
        try:
            with path.open() as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(source=source, message=f"Cannot read config {path}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(source=source, message=f"Config {path} must be a mapping")
        data.update(loaded or {})

    for var, field_name in ENV_FALLBACKS.items():
        if env.get(var) and data.get(field_name) is None:
            data[field_name] = env[var]
    for var, field_name in ENV_OVERRIDES.items():
        if env.get(var):
            data[field_name] = env[var]

    if "log_level" in data and isinstance(data["log_level"], str):
        data["log_level"] = data["log_level"].lower()

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(source=source, message=f"Invalid settings: {e}") from e

    if bool(settings.remote_url) != bool(settings.remote_key):
        log.warning(
            "remote_partially_configured",
            remote_url="SET" if settings.remote_url else "NOT SET",
            remote_key="SET" if settings.remote_key else "NOT SET",
        )
    return settings
