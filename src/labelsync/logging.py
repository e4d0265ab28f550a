"""
Logging configuration.

Provides a single entry point for configuring structured logging.
Level and output format come from explicit arguments or, when omitted,
from :class:`~labelsync.config.Settings` (``LABELSYNC_LOG_LEVEL`` and
``LABELSYNC_LOG_FORMAT``).

Usage:
    # Configure at application startup
    from labelsync.logging import configure_logging, get_logger
    configure_logging()

    logger = get_logger(__name__)
    logger.info("save_committed", dataset="ptz", records=3)
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Literal

import structlog
from structlog.types import Processor

# Track if logging has been configured
_configured = False


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Should be called once at application startup (CLI entry, API lifespan).
    Subsequent calls are no-ops unless force=True.

    Args:
        level: Log level (overrides LABELSYNC_LOG_LEVEL)
        format: Output format (overrides LABELSYNC_LOG_FORMAT)
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    if level is None or format is None:
        from labelsync.config import get_settings

        settings = get_settings()
        level = level or settings.log_level
        format = format or settings.log_format

    log_level = level.upper()

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        # UTC ISO-8601 timestamps
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.contextvars.merge_contextvars,
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure stdlib logging to match
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
        force=True,
    )
    logging.getLogger("labelsync").setLevel(getattr(logging, log_level))

    _configured = True


def get_logger(name: str | None = None, **initial_values: Any) -> Any:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name, **initial_values)


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured
