"""Daemon management for the fitsync background process.

Handles daemonization (double-fork), PID tracking, graceful shutdown, and the
async main loop that hosts the sync engine, the JSON-RPC server on a Unix
domain socket and the local status API.
"""

from __future__ import annotations

import asyncio
import atexit
import os
import signal
import socket
import sys
import time
from pathlib import Path

import structlog
import uvicorn

from fitsync.config import get_base_dir
from fitsync.logging import DAEMON_LOG

log = structlog.get_logger(__name__)

_PID_FILE = "daemon.pid"
_SOCKET_FILE = "daemon.sock"
_LOG_DIR = "logs"


def ensure_clean_socket(sock_path: Path) -> None:
    """Remove *sock_path* if it is a stale (unconnectable) Unix socket.

    A socket with a live listener is left alone.
    """
    if not sock_path.exists():
        return

    test_sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        test_sock.connect(str(sock_path))
    except (ConnectionRefusedError, FileNotFoundError, OSError):
        log.debug("removing stale socket", path=str(sock_path))
        sock_path.unlink(missing_ok=True)
    else:
        test_sock.close()


class Daemon:
    """Manages the lifecycle of the fitsync background daemon."""

    def __init__(self) -> None:
        base = get_base_dir()
        self.base_dir: Path = base
        self.pid_path: Path = base / _PID_FILE
        self.socket_path: Path = base / _SOCKET_FILE
        self.log_dir: Path = base / _LOG_DIR
        self.log_file: Path = self.log_dir / DAEMON_LOG

    # -- PID helpers --------------------------------------------------------

    def get_pid(self) -> int | None:
        """Read the PID from the PID file, or *None* if it does not exist."""
        try:
            return int(self.pid_path.read_text().strip())
        except (FileNotFoundError, ValueError):
            return None

    def is_running(self) -> bool:
        """Return *True* if the daemon process is alive.

        Cleans up a stale PID file when the recorded process no longer exists.
        """
        pid = self.get_pid()
        if pid is None:
            return False

        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            log.debug("removing stale pid file", pid=pid)
            self.pid_path.unlink(missing_ok=True)
            return False
        except PermissionError:
            # Alive, just not ours to signal.
            return True

        return True

    def _write_pid(self) -> None:
        self.pid_path.write_text(str(os.getpid()))

    def _cleanup(self) -> None:
        """Remove the PID file and socket file if they exist."""
        self.pid_path.unlink(missing_ok=True)
        self.socket_path.unlink(missing_ok=True)

    # -- Start / Stop -------------------------------------------------------

    def start(self) -> None:
        """Daemonize with the classic double-fork.

        The parent returns once the grandchild has written its PID file; the
        grandchild runs :meth:`_run_daemon` and never returns.
        """
        if self.is_running():
            log.warning("daemon already running", pid=self.get_pid())
            return

        self.base_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        self.log_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

        try:
            pid = os.fork()
        except OSError as exc:
            log.error("first fork failed", error=str(exc))
            sys.exit(1)

        if pid > 0:
            for _ in range(50):
                if self.pid_path.exists():
                    break
                time.sleep(0.1)
            return

        os.setsid()

        try:
            pid = os.fork()
        except OSError as exc:
            log.error("second fork failed", error=str(exc))
            sys.exit(1)

        if pid > 0:
            os._exit(0)

        sys.stdout.flush()
        sys.stderr.flush()

        devnull = open(os.devnull, "rb")  # noqa: SIM115
        log_fh = open(self.log_file, "ab")  # noqa: SIM115

        os.dup2(devnull.fileno(), sys.stdin.fileno())
        os.dup2(log_fh.fileno(), sys.stdout.fileno())
        os.dup2(log_fh.fileno(), sys.stderr.fileno())

        self._write_pid()
        atexit.register(self._cleanup)

        self._run_daemon()

    def run_foreground(self) -> None:
        """Run the daemon loop in the current process (``fitsync start --foreground``)."""
        if self.is_running():
            log.warning("daemon already running", pid=self.get_pid())
            return
        self.base_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        self._write_pid()
        try:
            self._run_daemon(console=True)
        finally:
            self._cleanup()

    def stop(self) -> None:
        """Send SIGTERM to the running daemon and wait for it to exit."""
        pid = self.get_pid()
        if pid is None:
            log.info("no pid file found; daemon is not running")
            return

        if not self.is_running():
            log.info("daemon is not running (stale pid file cleaned up)")
            return

        log.info("sending SIGTERM to daemon", pid=pid)
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            self._cleanup()
            return

        for _ in range(100):
            try:
                os.kill(pid, 0)
            except ProcessLookupError:
                log.info("daemon stopped", pid=pid)
                self._cleanup()
                return
            time.sleep(0.1)

        log.warning("daemon did not stop in time; sending SIGKILL", pid=pid)
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        self._cleanup()

    # -- Internal daemon loop -----------------------------------------------

    def _run_daemon(self, *, console: bool = False) -> None:
        from fitsync.config import load_config
        from fitsync.logging import setup_logging

        cfg = load_config()
        setup_logging(cfg.daemon.log_level, self.log_dir, console=console)
        asyncio.run(self._async_main())

    async def _async_main(self) -> None:
        """Async entry point: wire up the engine and servers, wait for shutdown."""
        from fitsync.config import load_config
        from fitsync.server.api import create_api_app
        from fitsync.server.rpc import DaemonState, create_rpc_app
        from fitsync.storage import LocalStore, SyncHistory
        from fitsync.sync.engine import SyncEngine
        from fitsync.sync.errors import SyncError
        from fitsync.sync.scheduler import SyncScheduler
        from fitsync.sync.timers import TimerQueue

        state = DaemonState()
        app_config = load_config()

        store = LocalStore(app_config.store_path)
        store.open()

        history = SyncHistory(app_config.history_path)
        await history.connect()
        state.history = history

        timers = TimerQueue()
        engine = SyncEngine(app_config, store, timers, history=history)
        scheduler = SyncScheduler(
            engine,
            timers,
            interval_minutes=app_config.sync.interval_minutes,
            probe_seconds=app_config.sync.probe_seconds,
        )
        state.engine = engine
        state.scheduler = scheduler

        if app_config.is_cloud_configured():
            if store.load_dataset().is_empty():
                try:
                    await engine.restore_from_remote()
                except SyncError as exc:
                    log.warning("startup_restore_failed", error_kind=exc.kind, error=str(exc))
        else:
            log.warning("cloud_not_configured", hint="run: fitsync cloud init")

        await scheduler.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, state.request_shutdown)

        ensure_clean_socket(self.socket_path)

        rpc_server = uvicorn.Server(
            uvicorn.Config(
                create_rpc_app(state),
                uds=str(self.socket_path),
                log_level="info",
                loop="asyncio",
            )
        )
        api_server = uvicorn.Server(
            uvicorn.Config(
                create_api_app(state),
                host="127.0.0.1",
                port=app_config.daemon.api_port,
                log_level="info",
                loop="asyncio",
            )
        )

        rpc_task = asyncio.create_task(rpc_server.serve())
        api_task = asyncio.create_task(api_server.serve())

        await state.shutdown_event.wait()

        log.info("initiating graceful shutdown")

        await scheduler.stop()
        engine.close()

        rpc_server.should_exit = True
        api_server.should_exit = True
        await rpc_task
        await api_task

        await history.close()
        store.close()

        self._cleanup()
        log.info("daemon shut down cleanly")
