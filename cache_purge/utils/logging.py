"""Logging configuration and status helpers."""

import logging
import sys
from typing import Optional

import structlog

from cache_purge.core.config import Settings, get_settings


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Setup structured logging."""
    settings = settings or get_settings()

    # Clear existing handlers
    logging.root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.root.setLevel(settings.log_level)
    logging.root.addHandler(handler)

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Reduce noise from external libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)


def log_level_for_status(status: int) -> str:
    """Map an upstream HTTP status to the log level it is reported with."""
    if status < 400:
        return "info"
    if status < 500:
        return "warning"
    return "error"


def propagate_status_code(status: int) -> int:
    """Translate an upstream status into the status reported to our caller.

    Not-found is passed through, rate limiting becomes 503 and everything
    else is reported as a bad gateway.
    """
    if status == 404:
        return 404
    if status == 429:
        return 503
    return 502
