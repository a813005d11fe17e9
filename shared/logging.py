"""
Structured logging for Quorum components.

All modules get their logger via:
    from shared.logging import get_logger
    log = get_logger("quorum", "cache")

    log.info("quorum.cache.hit", key=key, kind="consensus")

Events are dotted lowercase names; keyword fields are rendered as
``key=value`` pairs after the event. The underlying loggers are plain
stdlib loggers named ``<component>.<name>``, so handlers and levels
can be configured the usual way.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, Union

# Top-level packages whose loggers setup_logging configures
COMPONENTS = ("quorum", "shared")
LOG_LEVEL = os.environ.get("QUORUM_LOG_LEVEL", "INFO")
MAX_BYTES = 10 * 1024 * 1024  # 10 MB per file
BACKUP_COUNT = 3

_initialized = False


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return value if value and " " not in value else repr(value)
    return str(value)


class StructuredLogger:
    """Thin wrapper that turns ``event, **fields`` calls into log records."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, event: str, exc_info: bool = False, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if fields:
            rendered = " ".join(f"{k}={_format_value(v)}" for k, v in fields.items())
            message = f"{event} {rendered}"
        else:
            message = event
        self._logger.log(level, message, exc_info=exc_info, extra={"event": event, "fields": fields})

    def debug(self, event: str, **fields: Any) -> None:
        self._log(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self._log(logging.INFO, event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._log(logging.WARNING, event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self._log(logging.ERROR, event, **fields)

    def exception(self, event: str, **fields: Any) -> None:
        self._log(logging.ERROR, event, exc_info=True, **fields)


def setup_logging(
    level: Union[str, int] = LOG_LEVEL,
    log_file: Optional[Union[str, Path]] = None,
) -> None:
    """
    Configure console (and optionally rotating file) output.

    Safe to call more than once; only the first call installs handlers.
    """
    global _initialized
    loggers = [logging.getLogger(component) for component in COMPONENTS]
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    for logger in loggers:
        logger.setLevel(level)

    if _initialized:
        return
    _initialized = True

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = []
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(fmt)
    handlers.append(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(fmt)
        handlers.append(file_handler)

    for logger in loggers:
        for handler in handlers:
            logger.addHandler(handler)


def get_logger(component: str, name: str) -> StructuredLogger:
    """
    Get a structured logger for a module.

    Args:
        component: Top-level package (e.g. "quorum", "shared")
        name: Module name within the component (e.g. "cache")
    """
    return StructuredLogger(logging.getLogger(f"{component}.{name}"))
