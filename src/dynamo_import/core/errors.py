"""
Connector error types.

::

    DynamoImportError
    ├── ConfigurationError        bad <dataSource>/<entity> settings, abort at init
    ├── DateParseError            last-import timestamp not parseable
    └── RemoteError               anything DynamoDB itself reported
        ├── RemoteValidationError Query/Scan request rejected (schema logged)
        └── RemotePermissionError identity may not list tables

    ExpressionParseWarning        one malformed name/value map entry, skipped

ConfigurationError and RemoteValidationError abort the import. A denied
table listing skips the existence check; a bad timestamp is logged and the
``dynamo.last_index_time_*`` variables stay unset.

    raise ConfigurationError(
        "attribute [stsDuration] must be an integer value, not 'abc'"
    ).with_context(attribute="stsDuration")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    CONFIG = "CONFIG"
    VALIDATION = "VALIDATION"
    AUTH = "AUTH"
    SOURCE = "SOURCE"
    PARSE = "PARSE"
    NETWORK = "NETWORK"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


_CONTEXT_FIELDS = ("entity", "table_name", "attribute", "error_code")


@dataclass
class ErrorContext:
    """Where the failure happened; unknown keys go to ``metadata``."""

    entity: str | None = None
    table_name: str | None = None
    attribute: str | None = None
    error_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def set(self, key: str, value: Any) -> None:
        if key in _CONTEXT_FIELDS:
            setattr(self, key, value)
        else:
            self.metadata[key] = value

    def to_dict(self) -> dict[str, Any]:
        out = {key: getattr(self, key) for key in _CONTEXT_FIELDS if getattr(self, key) is not None}
        out.update(self.metadata)
        return out


class DynamoImportError(Exception):
    """
    Root of the connector's errors.

    Subclasses pick a ``default_category``; none of them is retryable unless
    the raiser says so.
    """

    default_category = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool = False,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **values: Any) -> DynamoImportError:
        for key, value in values.items():
            self.context.set(key, value)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Flat form for structured log entries."""
        out: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if context := self.context.to_dict():
            out["context"] = context
        if self.cause is not None:
            out["cause"] = str(self.cause)
        return out

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


class ConfigurationError(DynamoImportError):
    """Contradictory or missing configuration, detected before data is read."""

    default_category = ErrorCategory.CONFIG


class DateParseError(DynamoImportError):
    default_category = ErrorCategory.PARSE


class RemoteError(DynamoImportError):
    default_category = ErrorCategory.SOURCE


class RemoteValidationError(RemoteError):
    default_category = ErrorCategory.VALIDATION


class RemotePermissionError(RemoteError):
    default_category = ErrorCategory.AUTH


class ExpressionParseWarning(UserWarning):
    """A name-map or value-map entry was malformed and dropped."""


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, DynamoImportError) and error.retryable


def categorize_error(error: BaseException) -> ErrorCategory:
    if isinstance(error, DynamoImportError):
        return error.category
    return ErrorCategory.UNKNOWN


__all__ = [
    "ConfigurationError",
    "DateParseError",
    "DynamoImportError",
    "ErrorCategory",
    "ErrorContext",
    "ExpressionParseWarning",
    "RemoteError",
    "RemotePermissionError",
    "RemoteValidationError",
    "categorize_error",
    "is_retryable",
]
