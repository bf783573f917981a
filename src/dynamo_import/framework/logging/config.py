"""
structlog setup for the connector.

Output goes to stderr so the CLI can keep stdout for records. Level and
renderer fall back to ``DYNAMO_IMPORT_LOG_LEVEL`` / ``DYNAMO_IMPORT_LOG_FORMAT``.
"""

from __future__ import annotations

import logging
import sys
from typing import Literal

import structlog
from structlog.types import Processor

from dynamo_import.core.settings import get_settings
from dynamo_import.framework.logging.context import merge_import_context

PACKAGE_LOGGER = "dynamo_import"

# AWS SDK loggers never go below WARNING
AWS_LOGGERS = ("botocore", "boto3", "urllib3")

_configured = False


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(default=str)
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def build_processors(log_format: str) -> list[Processor]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        merge_import_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _renderer(log_format),
    ]


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    *,
    force: bool = False,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Only the first call takes effect unless ``force`` is set.
    """
    global _configured
    if _configured and not force:
        return

    settings = get_settings()
    numeric_level = logging.getLevelName((level or settings.log_level).upper())
    log_format = (format or settings.log_format).lower()

    structlog.configure(
        processors=build_processors(log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level, force=True)
    logging.getLogger(PACKAGE_LOGGER).setLevel(numeric_level)
    for name in AWS_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, numeric_level))

    _configured = True


def is_configured() -> bool:
    return _configured


def is_debug_enabled() -> bool:
    return logging.getLogger(PACKAGE_LOGGER).isEnabledFor(logging.DEBUG)
