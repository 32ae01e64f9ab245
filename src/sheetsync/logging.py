"""Structured logging setup for sync processes.

structlog events are routed through stdlib logging so LOG_LEVEL filters
them before rendering. Production renders one JSON object per event; other
environments render plain console lines. SheetSyncService.from_settings()
calls configure_structlog() when a process wires itself up.
"""

from __future__ import annotations

import logging

import structlog

from src.sheetsync.config import Environment, Settings, get_settings


def _log_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _renderer(environment: Environment) -> structlog.types.Processor:
    if environment == Environment.production:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def configure_structlog(settings: Settings | None = None) -> None:
    """Point structlog at stdlib logging with the configured level and renderer."""
    settings = settings or get_settings()
    level = _log_level(settings.LOG_LEVEL)

    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger().setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            _renderer(settings.ENVIRONMENT),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
