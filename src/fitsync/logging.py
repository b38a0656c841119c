"""Logging for the fitsync daemon and CLI.

structlog renders every event through stdlib handlers.  Two rotating files
live under ``~/.fitsync/logs``:

``daemon.log``
    Human-readable, every event.
``sync.log``
    JSON lines for the ``fitsync.sync`` loggers only: attempts, retries,
    connectivity changes.  Meant for ``jq`` and for ``fitsync logs --sync``.

JSONBin master keys never reach a log file; see :func:`redact_secrets`.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

DAEMON_LOG = "daemon.log"
SYNC_LOG = "sync.log"

_MAX_BYTES = 10 * 1024 * 1024
_BACKUP_COUNT = 5

_QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "httpx", "httpcore")
_SECRET_FIELDS = frozenset({"api_key", "master_key", "x-master-key"})
_KEY_PREFIXES = ("$2a$", "$2b$")


def redact_secrets(_logger: Any, _method: str, event_dict: dict) -> dict:
    """Mask JSONBin master keys, whether passed by field name or by value."""
    for field, value in event_dict.items():
        if field.lower() in _SECRET_FIELDS or (isinstance(value, str) and value.startswith(_KEY_PREFIXES)):
            event_dict[field] = "***"
    return event_dict


_pre_chain: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.ExtraAdder(),
    redact_secrets,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _formatter(renderer: structlog.types.Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_pre_chain)


def _file_handler(path: Path, renderer: structlog.types.Processor, only: str | None = None) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8")
    handler.setFormatter(_formatter(renderer))
    if only:
        handler.addFilter(logging.Filter(only))
    return handler


def build_handlers(log_dir: Path | None, *, console: bool = False) -> list[logging.Handler]:
    """Return the daemon's handlers: the two log files and, optionally, stderr."""
    handlers: list[logging.Handler] = []
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(_file_handler(log_dir / DAEMON_LOG, structlog.dev.ConsoleRenderer(colors=False)))
        handlers.append(_file_handler(log_dir / SYNC_LOG, structlog.processors.JSONRenderer(), only="fitsync.sync"))
    if console:
        stderr = logging.StreamHandler(sys.stderr)
        stderr.setFormatter(_formatter(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())))
        handlers.append(stderr)
    return handlers


def _log_unhandled(exc_type: type[BaseException], exc_value: BaseException, exc_tb: object) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
        return
    logging.getLogger("fitsync").critical("Unhandled exception", exc_info=(exc_type, exc_value, exc_tb))


def setup_logging(log_level: str = "info", log_dir: Path | None = None, *, console: bool = False) -> None:
    """Route structlog and stdlib logging into the fitsync log files.

    *log_dir* of None skips the files (tests, one-shot CLI commands);
    *console* mirrors events to stderr for ``fitsync start --foreground``.
    Unknown level names fall back to ``info``.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[*_pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    for handler in build_handlers(log_dir, console=console):
        root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    sys.excepthook = _log_unhandled  # type: ignore[assignment]
