"""Tests for dynamo_import.core.errors module."""

import pytest

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
    categorize_error,
    is_retryable,
)


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_create_empty_context(self):
        ctx = ErrorContext()
        assert ctx.entity is None
        assert ctx.table_name is None
        assert ctx.metadata == {}

    def test_to_dict_includes_set_fields(self):
        """to_dict includes only non-None fields plus metadata."""
        ctx = ErrorContext(table_name="Orders", attribute="region", metadata={"op": "query"})
        d = ctx.to_dict()
        assert d == {"table_name": "Orders", "attribute": "region", "op": "query"}


class TestDynamoImportError:
    """Test the base error."""

    def test_defaults(self):
        err = DynamoImportError("something broke")
        assert str(err) == "something broke"
        assert err.message == "something broke"
        assert err.category == ErrorCategory.INTERNAL
        assert err.retryable is False
        assert err.cause is None

    def test_with_context_sets_known_fields_and_metadata(self):
        err = DynamoImportError("x").with_context(table_name="Orders", operation="scan")
        assert err.context.table_name == "Orders"
        assert err.context.metadata == {"operation": "scan"}

    def test_with_context_returns_same_instance(self):
        err = ConfigurationError("x")
        assert err.with_context(attribute="region") is err

    def test_cause_is_chained(self):
        original = ValueError("bad")
        err = DynamoImportError("wrapped", cause=original)
        assert err.__cause__ is original

    def test_to_dict(self):
        err = RemoteValidationError("rejected", cause=ValueError("inner")).with_context(
            table_name="Orders",
            error_code="ValidationException",
        )
        d = err.to_dict()
        assert d["error_type"] == "RemoteValidationError"
        assert d["message"] == "rejected"
        assert d["category"] == "VALIDATION"
        assert d["retryable"] is False
        assert d["context"] == {"table_name": "Orders", "error_code": "ValidationException"}
        assert d["cause"] == "inner"

    def test_explicit_category_overrides_default(self):
        err = RemoteError("slow", category=ErrorCategory.NETWORK, retryable=True)
        assert err.category == ErrorCategory.NETWORK
        assert err.retryable is True


class TestErrorHierarchy:
    """Subclasses carry their category."""

    @pytest.mark.parametrize(
        "cls, category",
        [
            (ConfigurationError, ErrorCategory.CONFIG),
            (RemoteError, ErrorCategory.SOURCE),
            (RemoteValidationError, ErrorCategory.VALIDATION),
            (RemotePermissionError, ErrorCategory.AUTH),
            (DateParseError, ErrorCategory.PARSE),
        ],
    )
    def test_default_category(self, cls, category):
        err = cls("x")
        assert isinstance(err, DynamoImportError)
        assert err.category == category

    def test_remote_errors_share_base(self):
        assert issubclass(RemoteValidationError, RemoteError)
        assert issubclass(RemotePermissionError, RemoteError)

    def test_configuration_error_never_retryable(self):
        assert ConfigurationError("x").retryable is False

    def test_parse_warning_is_user_warning(self):
        assert issubclass(ExpressionParseWarning, UserWarning)


class TestHelpers:
    def test_is_retryable(self):
        assert is_retryable(RemoteError("x", retryable=True)) is True
        assert is_retryable(ConfigurationError("x")) is False
        assert is_retryable(RuntimeError("x")) is False

    def test_categorize_error(self):
        assert categorize_error(RemotePermissionError("x")) == ErrorCategory.AUTH
        assert categorize_error(KeyError("x")) == ErrorCategory.UNKNOWN
