"""Structured logging for sync runs and queries.

Events are kebab-case names whose first word names the subsystem that
emitted them (``sync-pass-complete``, ``store-url-deleted``,
``embedding-retry``, ``query-schema-fallback``). That word is copied into
a ``component`` field so the JSON log can be filtered per subsystem.
Console output goes to stderr through rich; stdout is reserved for query
results.
"""

from __future__ import annotations

import gzip
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
import shutil
from typing import Any, MutableMapping

from rich.console import Console
from rich.logging import RichHandler
import structlog

__all__ = ["COMPONENTS", "Logger", "add_component", "configure_logging", "get_logger"]

Logger = structlog.stdlib.BoundLogger

COMPONENTS = frozenset({"sync", "store", "embedding", "query", "qdrant", "diff"})
LOG_FILENAME = "docsync.log"
_ARCHIVE_DAYS = 7

# Client libraries that log every request at DEBUG.
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "qdrant_client", "urllib3")


def add_component(
    _logger: Any,
    _method: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Derive ``component`` from the event name unless already bound."""

    event = event_dict.get("event")
    if "component" not in event_dict and isinstance(event, str):
        head = event.split("-", 1)[0]
        if head in COMPONENTS:
            event_dict["component"] = head
    return event_dict


_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    add_component,
]


def _level_for(name: str) -> int:
    value = logging.getLevelName(name.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unsupported log level: {name!r}")
    return value


def _compress_rotated(source: str, dest: str) -> None:
    with open(source, "rb") as src, gzip.open(dest, "wb") as target:
        shutil.copyfileobj(src, target)
    Path(source).unlink(missing_ok=True)


def _json_file_handler(log_file: Path, level: int) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        log_file,
        when="midnight",
        backupCount=_ARCHIVE_DAYS,
        utc=True,
        encoding="utf-8",
        delay=True,
    )
    handler.suffix = "%Y-%m-%d"
    handler.namer = lambda name: f"{name}.gz"
    handler.rotator = _compress_rotated
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(sort_keys=True),
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )
    return handler


def _console_handler(level: int, console: Console | None) -> RichHandler:
    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
        markup=False,
        log_time_format="%H:%M:%S",
    )
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=False),
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )
    return handler


def configure_logging(
    *,
    level: str = "INFO",
    log_dir: str | Path | None = None,
    console: Console | None = None,
) -> Path | None:
    """Route structlog through stdlib handlers for one CLI invocation.

    Args:
        level: Level name, case-insensitive.
        log_dir: Directory for the rotating JSON ``docsync.log``; omitted
            means console only.
        console: Rich console override, used by tests.

    Returns:
        The JSON log path, or ``None`` without ``log_dir``.

    Raises:
        ValueError: If ``level`` is not a logging level name.
    """

    log_level = _level_for(level)

    structlog.reset_defaults()
    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [_console_handler(log_level, console)]
    log_file: Path | None = None
    if log_dir is not None:
        directory = Path(log_dir).expanduser().resolve(strict=False)
        directory.mkdir(parents=True, exist_ok=True)
        log_file = directory / LOG_FILENAME
        handlers.append(_json_file_handler(log_file, log_level))

    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
    logging.captureWarnings(True)
    return log_file


def get_logger(name: str | None = None, **initial_context: Any) -> Logger:
    return structlog.get_logger(name).bind(**initial_context)
