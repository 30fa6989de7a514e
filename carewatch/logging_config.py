"""
Structured logging setup.

All modules log through ``structlog.get_logger(__name__)`` with snake_case
event names. Call setup_logging() once per process before the first event.
"""

import logging
from typing import Optional

import structlog

from carewatch.config.models import LogFormat, LogLevel


def setup_logging(
    level: LogLevel | str = LogLevel.INFO,
    log_format: Optional[LogFormat | str] = LogFormat.JSON,
) -> None:
    """
    Configure structlog over the standard logging module.

    Args:
        level: Minimum log level.
        log_format: "json" for machine-readable output, "text" for a
            console renderer during local development.
    """
    level_name = LogLevel(str(getattr(level, "value", level)).upper()).value
    fmt = LogFormat(getattr(log_format, "value", log_format) or LogFormat.JSON)

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == LogFormat.JSON
        else structlog.dev.ConsoleRenderer()
    )

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
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level_name),
    )

    # aiohttp access and client logs are noisy at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
