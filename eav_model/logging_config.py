"""
Logging configuration.

Sets up structlog on top of the standard library logging module so that
every module can use ``structlog.get_logger(__name__)``.
"""

import logging
import sys

import structlog

from .config import settings


def configure_logging(level: str = None, json_logs: bool = None) -> None:
    """
    Configure structlog and the root stdlib logger.

    Args:
        level: Log level name, defaults to ``settings.LOG_LEVEL``
        json_logs: Render JSON lines instead of console output,
            defaults to ``settings.LOG_JSON``
    """
    level = level or settings.LOG_LEVEL
    if json_logs is None:
        json_logs = settings.LOG_JSON

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
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
