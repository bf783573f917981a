"""
Structured logging for import runs.

    from dynamo_import.framework.logging import configure_logging, get_logger, log_step

    configure_logging()
    set_context(entity="orders", mode="full")
    with log_step("dynamo.entity_init"):
        ...
"""

from dynamo_import.framework.logging.config import configure_logging
from dynamo_import.framework.logging.context import (
    ImportContext,
    bind_context,
    clear_context,
    get_context,
    get_logger,
    scoped_context,
    set_context,
)
from dynamo_import.framework.logging.timing import StepSpan, log_step

__all__ = [
    "ImportContext",
    "StepSpan",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_context",
    "get_logger",
    "log_step",
    "scoped_context",
    "set_context",
]
