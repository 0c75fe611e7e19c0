from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from typing import Any

import structlog

_BASE_LOGGER_NAME = "graphport"
_LOG_FORMAT_ENV = "GRAPHPORT_LOG_FORMAT"
_CONFIGURED = False


def _configure_structlog(level_name: str, force_json: bool = False) -> None:
    """Configure structlog processors and the stdlib handler."""
    log_format = os.environ.get(_LOG_FORMAT_ENV, "").lower()
    if force_json or log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    elif sys.stderr.isatty():
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        renderer,
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Only our own logger gets a handler; the host application owns the root.
    base_logger = logging.getLogger(_BASE_LOGGER_NAME)
    for handler in list(base_logger.handlers):
        base_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler.setFormatter(formatter)
    base_logger.addHandler(handler)
    base_logger.setLevel(level_name.upper())


def configure_logging(level: int | str = "INFO", force: bool = False) -> Any:
    """Configure the shared graphport logger with structlog."""
    global _CONFIGURED

    if isinstance(level, int):
        level_name = logging.getLevelName(level)
    else:
        level_name = level

    if _CONFIGURED and not force:
        return structlog.get_logger(_BASE_LOGGER_NAME)

    _configure_structlog(str(level_name))
    _CONFIGURED = True
    return structlog.get_logger(_BASE_LOGGER_NAME)


def get_logger(name: str | None = None) -> Any:
    """Return a structlog logger."""
    configure_logging()
    if name is None:
        return structlog.get_logger(_BASE_LOGGER_NAME)
    return structlog.get_logger(name)


def log_event(
    logger: Any,
    event: str,
    *,
    level: int | str = "INFO",
    fields: Mapping[str, Any] | None = None,
) -> None:
    """Emit structured key/value event logs."""
    payload = fields or {}

    if isinstance(level, int):
        level_name = logging.getLevelName(level).lower()
    else:
        level_name = str(level).lower()

    log_method = getattr(logger, level_name, logger.info)
    log_method(event, **payload)
