"""Configuration management for the fitsync daemon."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_BASE_DIR_NAME = ".fitsync"
_CONFIG_FILE = "config.toml"
_PID_FILE = "daemon.pid"
_SOCKET_FILE = "daemon.sock"
_LOG_DIR = "logs"
_STORE_FILE = "local.db"
_HISTORY_FILE = "history.db"

# JSONBin master keys are bcrypt-style hashes.
_API_KEY_PREFIXES = ("$2a$", "$2b$")
_API_KEY_MIN_LENGTH = 20


def get_base_dir() -> Path:
    """Return the base directory for all fitsync runtime files (~/.fitsync/)."""
    return Path.home() / _BASE_DIR_NAME


# ---------------------------------------------------------------------------
# Config models
# ---------------------------------------------------------------------------


class DaemonConfig(BaseModel):
    """Settings that control the daemon process itself."""

    api_port: int = Field(default=9848, description="Port for the local status API")
    log_level: str = Field(default="info", description="Logging level")


class SyncConfig(BaseModel):
    """Settings that control synchronisation and retry behaviour."""

    auto_sync: bool = Field(default=True, description="Push local changes automatically")
    base_delay_ms: int = Field(default=1000, ge=1, description="Backoff delay of the first retry")
    max_delay_ms: int = Field(default=30000, ge=1, description="Ceiling for any backoff delay")
    max_attempts: int = Field(default=3, ge=0, description="Automatic retries before giving up")
    jitter_ratio: float = Field(default=0.0, ge=0.0, le=1.0, description="Random extra delay, as a fraction")
    debounce_ms: int = Field(default=0, ge=0, description="Delay between a local change and its sync")
    reconnect_delay_ms: int = Field(default=1000, ge=0, description="Delay before syncing after reconnect")
    interval_minutes: int = Field(default=5, ge=1, description="Minutes between periodic sync sweeps")
    probe_seconds: int = Field(default=30, ge=1, description="Connectivity probe interval while offline")


class JsonBinConfig(BaseModel):
    """JSONBin.io credentials and bin location."""

    api_key: SecretStr = Field(default=SecretStr(""), description="JSONBin X-Master-Key")
    bin_id: str = Field(default="", description="Identifier of the bin holding the dataset")
    base_url: str = Field(default="https://api.jsonbin.io/v3", description="JSONBin API root")


class AppConfig(BaseModel):
    """Top-level application configuration."""

    daemon: DaemonConfig = Field(default_factory=DaemonConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    jsonbin: JsonBinConfig = Field(default_factory=JsonBinConfig)

    # -- derived paths (not stored in TOML) --------------------------------

    @property
    def base_dir(self) -> Path:
        return get_base_dir()

    @property
    def socket_path(self) -> Path:
        return self.base_dir / _SOCKET_FILE

    @property
    def pid_path(self) -> Path:
        return self.base_dir / _PID_FILE

    @property
    def log_dir(self) -> Path:
        return self.base_dir / _LOG_DIR

    @property
    def store_path(self) -> Path:
        return self.base_dir / _STORE_FILE

    @property
    def history_path(self) -> Path:
        return self.base_dir / _HISTORY_FILE

    def is_cloud_configured(self) -> bool:
        """Return True if a valid API key and a bin id are both set."""
        return bool(is_valid_api_key(self.jsonbin.api_key.get_secret_value()) and self.jsonbin.bin_id)


# ---------------------------------------------------------------------------
# API key validation
# ---------------------------------------------------------------------------


def is_valid_api_key(key: str) -> bool:
    """Return True if *key* looks like a JSONBin master key."""
    key = key.strip()
    return key.startswith(_API_KEY_PREFIXES) and len(key) >= _API_KEY_MIN_LENGTH


def validate_api_key(key: str) -> str:
    """Return the stripped key, or raise ``ValueError`` if it is not a JSONBin master key."""
    if not is_valid_api_key(key):
        msg = "API key must be a JSONBin master key starting with '$2a$' or '$2b$'"
        raise ValueError(msg)
    return key.strip()


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def ensure_dirs() -> None:
    """Create the base directory and log directory if they don't already exist."""
    base = get_base_dir()
    base.mkdir(mode=0o700, parents=True, exist_ok=True)
    (base / _LOG_DIR).mkdir(mode=0o700, parents=True, exist_ok=True)


def config_exists() -> bool:
    """Return True if a config file is present on disk."""
    return (get_base_dir() / _CONFIG_FILE).is_file()


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def load_config() -> AppConfig:
    """Load configuration from TOML, falling back to defaults if the file is missing."""
    path = get_base_dir() / _CONFIG_FILE
    if not path.is_file():
        return AppConfig()

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    return AppConfig.model_validate(raw)


def _format_toml_value(value: object) -> str:
    """Format a single Python value as a TOML literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return repr(value)
    if isinstance(value, SecretStr):
        value = value.get_secret_value()
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    msg = f"Unsupported TOML value type: {type(value)}"
    raise TypeError(msg)


def _dump_toml(config: AppConfig) -> str:
    """Serialize an AppConfig to a minimal TOML string.

    Only handles the flat two-level structure we actually use (tables with
    scalar values).
    """
    lines: list[str] = []
    sections = [
        ("daemon", config.daemon),
        ("sync", config.sync),
        ("jsonbin", config.jsonbin),
    ]
    for section_name, section_model in sections:
        lines.append(f"[{section_name}]")
        for key, value in section_model.model_dump(mode="python").items():
            lines.append(f"{key} = {_format_toml_value(value)}")
        lines.append("")
    return "\n".join(lines)


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML and restrict file permissions to owner-only."""
    ensure_dirs()
    path = get_base_dir() / _CONFIG_FILE
    path.write_text(_dump_toml(config), encoding="utf-8")
    os.chmod(path, 0o600)
