"""Structured logging for Conductor.

structlog renders every event once: human-readable in dev mode, one JSON
object per line in prod mode. Rendered lines go to stderr and, when file
logging is on, to a daily rotating ``conductor.log``.

Event names use dot notation, ``component.entity.verb_past_tense``:
``registry.mode.registered``, ``state.manager.saved``,
``state.manager.backup_fallback``. Common keys are ``mode_id``,
``state_id`` and ``attempt``.

Usage:
    from conductor.observability import bind_context, configure_logging, get_logger

    configure_logging(LoggingConfig(mode=LogMode.PROD))
    log = get_logger(__name__)
    bind_context(mode_id="discovery")
    log.info("state.manager.saved", state_id="current")
"""

from __future__ import annotations

from enum import Enum
from functools import partialmethod
import logging
from logging.handlers import TimedRotatingFileHandler
import os
from pathlib import Path
import sys
from typing import Any

from pydantic import BaseModel, Field
import structlog

LOG_MODE_ENV = "CONDUCTOR_LOG_MODE"
LOG_FILE_NAME = "conductor.log"


class LogMode(str, Enum):
    """Rendering mode for log events."""

    DEV = "dev"
    PROD = "prod"


class LoggingConfig(BaseModel, frozen=True):
    """Logging settings, usually the ``logging`` section of config.yaml.

    Attributes:
        mode: dev renders for humans, prod renders JSON lines.
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
        log_dir: Directory of the rotating log file.
        max_log_days: Rotated files kept before deletion.
        enable_file_logging: Mirror events into ``log_dir/conductor.log``.
    """

    mode: LogMode = LogMode.DEV
    log_level: str = "INFO"
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".conductor" / "logs")
    max_log_days: int = Field(default=7, ge=1, le=365)
    enable_file_logging: bool = False


_current_config: LoggingConfig | None = None


def _level_number(name: str) -> int:
    return logging.getLevelNamesMapping().get(name.upper(), logging.INFO)


def _mode_from_env() -> LogMode:
    return LogMode.PROD if os.environ.get(LOG_MODE_ENV, "").lower() == "prod" else LogMode.DEV


class _TeeLogger:
    """Writes rendered events to stderr and to an optional file handler."""

    def __init__(self, file_handler: logging.Handler | None) -> None:
        self._file_handler = file_handler

    def _write(self, level: int, message: str) -> None:
        print(message, file=sys.stderr)
        if self._file_handler is not None:
            self._file_handler.emit(
                logging.makeLogRecord(
                    {
                        "name": "conductor",
                        "levelno": level,
                        "levelname": logging.getLevelName(level),
                        "msg": message,
                    }
                )
            )

    debug = partialmethod(_write, logging.DEBUG)
    info = msg = partialmethod(_write, logging.INFO)
    warning = warn = partialmethod(_write, logging.WARNING)
    error = exception = partialmethod(_write, logging.ERROR)
    critical = fatal = partialmethod(_write, logging.CRITICAL)


def _file_handler(config: LoggingConfig) -> TimedRotatingFileHandler | None:
    if not config.enable_file_logging:
        return None
    config.log_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        config.log_dir / LOG_FILE_NAME,
        when="midnight",
        backupCount=config.max_log_days,
        encoding="utf-8",
        utc=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def _processors(mode: LogMode) -> list[Any]:
    renderer: Any = (
        structlog.dev.ConsoleRenderer(colors=True)
        if mode == LogMode.DEV
        else structlog.processors.JSONRenderer()
    )
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def _close_root_handlers() -> None:
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog, replacing any previous configuration.

    Args:
        config: Logging settings. Defaults to ``LoggingConfig`` with the
            mode taken from the CONDUCTOR_LOG_MODE environment variable.
    """
    global _current_config

    config = config or LoggingConfig(mode=_mode_from_env())
    level = _level_number(config.log_level)

    _close_root_handlers()
    logging.getLogger().setLevel(level)
    handler = _file_handler(config)
    if handler is not None:
        logging.getLogger().addHandler(handler)

    structlog.configure(
        processors=_processors(config.mode),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=lambda *_: _TeeLogger(handler),
        cache_logger_on_first_use=True,
    )
    _current_config = config


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, configuring defaults on first use."""
    if _current_config is None:
        configure_logging()
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables that follow the current task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_current_config() -> LoggingConfig | None:
    return _current_config


def is_configured() -> bool:
    return _current_config is not None


def reset_logging() -> None:
    """Forget the current configuration. Used by tests."""
    global _current_config
    _current_config = None
    _close_root_handlers()
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
