"""Structured logging setup shared by the API and the CLI"""

import logging
import sys
from typing import Optional

import structlog

from cms_fee_import.config import settings


def configure_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Route structlog through stdlib logging; JSON lines or console output."""
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    log_format = log_format or settings.log_format

    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)
    logging.getLogger().setLevel(level)

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
            structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
