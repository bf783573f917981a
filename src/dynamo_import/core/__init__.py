"""Core primitives: errors and settings."""

from dynamo_import.core.errors import (
    ConfigurationError,
    DateParseError,
    DynamoImportError,
    ErrorCategory,
    ErrorContext,
    ExpressionParseWarning,
    RemoteError,
    RemotePermissionError,
    RemoteValidationError,
)
from dynamo_import.core.settings import ImportSettings, get_settings, reset_settings

__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "DynamoImportError",
    "ConfigurationError",
    "RemoteError",
    "RemoteValidationError",
    "RemotePermissionError",
    "DateParseError",
    "ExpressionParseWarning",
    "ImportSettings",
    "get_settings",
    "reset_settings",
]
