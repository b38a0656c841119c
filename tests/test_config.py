"""Tests for fitsync.config module."""

from __future__ import annotations

import os
import stat
import tomllib
from pathlib import Path

import pytest
from pydantic import SecretStr, ValidationError

from fitsync.config import (
    AppConfig,
    DaemonConfig,
    JsonBinConfig,
    SyncConfig,
    _dump_toml,
    _format_toml_value,
    config_exists,
    ensure_dirs,
    is_valid_api_key,
    load_config,
    save_config,
    validate_api_key,
)

# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------


def test_daemon_config_defaults():
    cfg = DaemonConfig()
    assert cfg.api_port == 9848
    assert cfg.log_level == "info"


def test_sync_config_defaults():
    cfg = SyncConfig()
    assert cfg.auto_sync is True
    assert cfg.base_delay_ms == 1000
    assert cfg.max_delay_ms == 30000
    assert cfg.max_attempts == 3
    assert cfg.jitter_ratio == 0.0
    assert cfg.interval_minutes == 5


def test_jsonbin_config_defaults():
    cfg = JsonBinConfig()
    assert cfg.api_key.get_secret_value() == ""
    assert cfg.bin_id == ""
    assert cfg.base_url == "https://api.jsonbin.io/v3"


def test_sync_config_rejects_out_of_range():
    with pytest.raises(ValidationError):
        SyncConfig(jitter_ratio=1.5)
    with pytest.raises(ValidationError):
        SyncConfig(base_delay_ms=0)


# ---------------------------------------------------------------------------
# 2. AppConfig properties (use base_dir fixture)
# ---------------------------------------------------------------------------


def test_derived_paths(base_dir: Path):
    cfg = AppConfig()
    assert cfg.base_dir == base_dir
    assert cfg.socket_path == base_dir / "daemon.sock"
    assert cfg.pid_path == base_dir / "daemon.pid"
    assert cfg.log_dir == base_dir / "logs"
    assert cfg.store_path == base_dir / "local.db"
    assert cfg.history_path == base_dir / "history.db"


# ---------------------------------------------------------------------------
# 3. API key validation
# ---------------------------------------------------------------------------


def test_is_valid_api_key(valid_key: str):
    assert is_valid_api_key(valid_key)
    assert is_valid_api_key("$2a$" + "x" * 30)
    assert not is_valid_api_key("")
    assert not is_valid_api_key("$2b$short")
    assert not is_valid_api_key("plain-api-key-without-prefix")


def test_validate_api_key_strips(valid_key: str):
    assert validate_api_key(f"  {valid_key}\n") == valid_key


def test_validate_api_key_rejects_bad_key():
    with pytest.raises(ValueError, match=r"\$2a\$"):
        validate_api_key("not-a-key")


def test_is_cloud_configured(valid_key: str):
    assert AppConfig().is_cloud_configured() is False
    assert AppConfig(jsonbin=JsonBinConfig(api_key=SecretStr(valid_key))).is_cloud_configured() is False
    assert AppConfig(jsonbin=JsonBinConfig(api_key=SecretStr("bad"), bin_id="b1")).is_cloud_configured() is False
    cfg = AppConfig(jsonbin=JsonBinConfig(api_key=SecretStr(valid_key), bin_id="b1"))
    assert cfg.is_cloud_configured() is True


# ---------------------------------------------------------------------------
# 4. ensure_dirs / config_exists
# ---------------------------------------------------------------------------


def test_ensure_dirs_creates_directories(base_dir: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    fresh = tmp_path / "fresh_base"
    monkeypatch.setattr("fitsync.config.get_base_dir", lambda: fresh)

    assert not fresh.exists()
    ensure_dirs()
    assert fresh.is_dir()
    assert (fresh / "logs").is_dir()


def test_config_exists(base_dir: Path):
    assert config_exists() is False
    (base_dir / "config.toml").write_text("")
    assert config_exists() is True


# ---------------------------------------------------------------------------
# 5. save_config / load_config
# ---------------------------------------------------------------------------


def test_load_config_no_file_returns_defaults(base_dir: Path):
    cfg = load_config()
    assert cfg.model_dump() == AppConfig().model_dump()


def test_save_load_round_trip_custom(base_dir: Path, valid_key: str):
    original = AppConfig(
        daemon=DaemonConfig(api_port=1234, log_level="debug"),
        sync=SyncConfig(max_attempts=5, jitter_ratio=0.25, auto_sync=False),
        jsonbin=JsonBinConfig(api_key=SecretStr(valid_key), bin_id="65f0c0ffee"),
    )
    save_config(original)
    loaded = load_config()

    assert loaded.daemon.api_port == 1234
    assert loaded.daemon.log_level == "debug"
    assert loaded.sync.max_attempts == 5
    assert loaded.sync.jitter_ratio == 0.25
    assert loaded.sync.auto_sync is False
    assert loaded.jsonbin.api_key.get_secret_value() == valid_key
    assert loaded.jsonbin.bin_id == "65f0c0ffee"


def test_load_config_partial_file_fills_defaults(base_dir: Path):
    (base_dir / "config.toml").write_text("[sync]\nmax_attempts = 7\n")
    cfg = load_config()
    assert cfg.sync.max_attempts == 7
    assert cfg.sync.base_delay_ms == 1000
    assert cfg.daemon.api_port == 9848


def test_save_config_sets_permissions(base_dir: Path):
    save_config(AppConfig())
    mode = stat.S_IMODE(os.stat(base_dir / "config.toml").st_mode)
    assert mode == 0o600


# ---------------------------------------------------------------------------
# 6. _format_toml_value / _dump_toml
# ---------------------------------------------------------------------------


def test_format_toml_value_scalars():
    assert _format_toml_value("hello") == '"hello"'
    assert _format_toml_value('say "hi"') == '"say \\"hi\\""'
    assert _format_toml_value("back\\slash") == '"back\\\\slash"'
    assert _format_toml_value(42) == "42"
    assert _format_toml_value(0.5) == "0.5"
    assert _format_toml_value(True) == "true"
    assert _format_toml_value(False) == "false"


def test_format_toml_value_secret_str():
    assert _format_toml_value(SecretStr("$2b$secret")) == '"$2b$secret"'


def test_format_toml_value_unsupported_type():
    with pytest.raises(TypeError, match="Unsupported TOML value type"):
        _format_toml_value([1, 2, 3])


def test_dump_toml_sections_parse():
    toml_str = _dump_toml(AppConfig())
    assert "[daemon]" in toml_str
    assert "[sync]" in toml_str
    assert "[jsonbin]" in toml_str

    parsed = tomllib.loads(toml_str)
    assert parsed["sync"]["jitter_ratio"] == 0.0
    assert parsed["jsonbin"]["base_url"] == "https://api.jsonbin.io/v3"


def test_secret_not_in_repr(valid_key: str):
    cfg = JsonBinConfig(api_key=SecretStr(valid_key))
    assert valid_key not in repr(cfg)
    assert valid_key not in str(cfg)
