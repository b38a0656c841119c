"""Tests for fitsync.daemon — Daemon lifecycle and socket helpers."""

from __future__ import annotations

import asyncio
import os
import socket
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from fitsync.daemon import Daemon, ensure_clean_socket

# ---------------------------------------------------------------------------
# Daemon.__init__
# ---------------------------------------------------------------------------


class TestDaemonInit:
    """Daemon.__init__ derives paths correctly from base_dir."""

    def test_paths_derived_from_base_dir(self, base_dir: Path) -> None:
        d = Daemon()

        assert d.base_dir == base_dir
        assert d.pid_path == base_dir / "daemon.pid"
        assert d.socket_path == base_dir / "daemon.sock"
        assert d.log_dir == base_dir / "logs"
        assert d.log_file == base_dir / "logs" / "daemon.log"


# ---------------------------------------------------------------------------
# PID handling
# ---------------------------------------------------------------------------


class TestPid:
    def test_returns_none_when_no_pid_file(self, base_dir: Path) -> None:
        assert Daemon().get_pid() is None

    def test_returns_int_when_pid_file_exists(self, base_dir: Path) -> None:
        d = Daemon()
        d.pid_path.write_text("12345")
        assert d.get_pid() == 12345

    def test_returns_none_for_invalid_content(self, base_dir: Path) -> None:
        d = Daemon()
        d.pid_path.write_text("not-a-number")
        assert d.get_pid() is None

    def test_writes_current_pid(self, base_dir: Path) -> None:
        d = Daemon()
        d._write_pid()
        assert int(d.pid_path.read_text().strip()) == os.getpid()


class TestIsRunning:
    def test_returns_false_when_no_pid_file(self, base_dir: Path) -> None:
        assert Daemon().is_running() is False

    def test_own_pid_is_running(self, base_dir: Path) -> None:
        d = Daemon()
        d._write_pid()
        assert d.is_running() is True

    def test_stale_pid_returns_false_and_cleans_up(self, base_dir: Path) -> None:
        d = Daemon()
        d.pid_path.write_text("99999999")

        assert d.is_running() is False
        assert not d.pid_path.exists()


class TestCleanup:
    def test_removes_pid_and_socket_files(self, base_dir: Path) -> None:
        d = Daemon()
        d.pid_path.write_text("12345")
        d.socket_path.touch()

        d._cleanup()

        assert not d.pid_path.exists()
        assert not d.socket_path.exists()

    def test_no_error_when_files_missing(self, base_dir: Path) -> None:
        Daemon()._cleanup()


class TestStop:
    def test_stop_without_pid_file_is_noop(self, base_dir: Path) -> None:
        with patch("fitsync.daemon.os.kill") as kill:
            Daemon().stop()
        kill.assert_not_called()


# ---------------------------------------------------------------------------
# Foreground mode
# ---------------------------------------------------------------------------


class TestRunForeground:
    def test_writes_pid_and_cleans_up(self, base_dir: Path) -> None:
        d = Daemon()
        seen: dict = {}

        def _fake_run(*, console: bool = False) -> None:
            seen["pid"] = d.get_pid()
            seen["console"] = console

        with patch.object(d, "_run_daemon", side_effect=_fake_run):
            d.run_foreground()

        assert seen == {"pid": os.getpid(), "console": True}
        assert not d.pid_path.exists()

    def test_cleans_up_on_error(self, base_dir: Path) -> None:
        d = Daemon()
        with patch.object(d, "_run_daemon", side_effect=RuntimeError("boom")), pytest.raises(RuntimeError):
            d.run_foreground()
        assert not d.pid_path.exists()


# ---------------------------------------------------------------------------
# Async main wiring
# ---------------------------------------------------------------------------


class FakeServer:
    """Stands in for uvicorn.Server without binding sockets."""

    instances: list[FakeServer] = []

    def __init__(self, config) -> None:
        self.config = config
        self.should_exit = False
        FakeServer.instances.append(self)

    async def serve(self) -> None:
        while not self.should_exit:
            await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_async_main_wires_and_shuts_down(base_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import fitsync.server.rpc as rpc_mod

    captured: dict = {}
    real_create = rpc_mod.create_rpc_app

    def _capture(state):
        captured["state"] = state
        asyncio.get_running_loop().call_later(0.2, state.request_shutdown)
        return real_create(state)

    FakeServer.instances = []
    monkeypatch.setattr("fitsync.server.rpc.create_rpc_app", _capture)
    monkeypatch.setattr("fitsync.daemon.uvicorn.Server", FakeServer)

    d = Daemon()
    d._write_pid()
    await d._async_main()

    state = captured["state"]
    assert state.engine is not None
    assert state.history is not None
    assert not state.scheduler.is_running
    assert len(FakeServer.instances) == 2
    assert all(s.should_exit for s in FakeServer.instances)
    assert (base_dir / "local.db").exists()
    assert (base_dir / "history.db").exists()
    assert not d.pid_path.exists()


# ---------------------------------------------------------------------------
# ensure_clean_socket
# ---------------------------------------------------------------------------


class TestEnsureCleanSocket:
    """ensure_clean_socket removes stale sockets and ignores absent paths."""

    def test_noop_when_path_does_not_exist(self, tmp_path: Path) -> None:
        sock_path = tmp_path / "nonexistent.sock"
        ensure_clean_socket(sock_path)
        assert not sock_path.exists()

    def test_removes_stale_unix_socket(self) -> None:
        # Short directory keeps the path under the AF_UNIX length limit.
        with tempfile.TemporaryDirectory(dir="/tmp") as short_dir:
            sock_path = Path(short_dir) / "s.sock"

            s = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                s.bind(str(sock_path))
            finally:
                s.close()

            assert sock_path.exists()
            ensure_clean_socket(sock_path)
            assert not sock_path.exists()

    def test_keeps_live_socket(self) -> None:
        with tempfile.TemporaryDirectory(dir="/tmp") as short_dir:
            sock_path = Path(short_dir) / "s.sock"

            s = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                s.bind(str(sock_path))
                s.listen(1)
                ensure_clean_socket(sock_path)
                assert sock_path.exists()
            finally:
                s.close()
