"""Shared fixtures for fitsync tests."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture()
def base_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect all fitsync runtime files to a temporary directory.

    Patches ``fitsync.config.get_base_dir`` (and the re-imported references in
    ``fitsync.daemon`` and ``fitsync.cli``) so that nothing touches the real
    ``~/.fitsync/``.
    """
    fake_base = tmp_path / ".fitsync"
    fake_base.mkdir()
    (fake_base / "logs").mkdir()

    monkeypatch.setattr("fitsync.config.get_base_dir", lambda: fake_base)
    monkeypatch.setattr("fitsync.daemon.get_base_dir", lambda: fake_base)
    monkeypatch.setattr("fitsync.cli.get_base_dir", lambda: fake_base)

    return fake_base


VALID_KEY = "$2b$10$abcdefghijklmnopqrstuv"


@pytest.fixture()
def valid_key() -> str:
    return VALID_KEY
