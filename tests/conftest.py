"""
Shared pytest fixtures for dynamo_import tests.

This module provides:
- A stub DynamoDB client that serves canned pages and records every call
- ``ClientError`` construction helpers
- Settings and log-context isolation between tests
"""

from __future__ import annotations

from typing import Any

import pytest
from botocore.exceptions import ClientError

from dynamo_import.core.settings import reset_settings
from dynamo_import.framework.logging import clear_context


# =============================================================================
# Stub client
# =============================================================================


def client_error(code: str, operation: str = "Query", message: str = "boom") -> ClientError:
    """Build a botocore ClientError with the given error code."""
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class StubDynamoClient:
    """
    In-memory stand-in for ``boto3.client("dynamodb")``.

    ``pages`` are returned one per query/scan call in order; items use the
    wire (AttributeValue) format, exactly as the service returns them.
    """

    def __init__(
        self,
        tables: list[str] | None = None,
        pages: list[dict[str, Any]] | None = None,
        table_description: dict[str, Any] | None = None,
    ):
        self.table_names = list(tables or [])
        self.pages = list(pages or [])
        self.table_description = table_description or {
            "TableName": "Orders",
            "AttributeDefinitions": [
                {"AttributeName": "id", "AttributeType": "S"},
                {"AttributeName": "year", "AttributeType": "N"},
            ],
            "KeySchema": [
                {"AttributeName": "id", "KeyType": "HASH"},
                {"AttributeName": "year", "KeyType": "RANGE"},
            ],
        }
        self.list_tables_error: Exception | None = None
        self.request_error: Exception | None = None
        self.describe_error: Exception | None = None
        self.calls: list[tuple[str, dict[str, Any]]] = []

    # -- recording helpers --------------------------------------------------

    @property
    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]

    def calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    # -- DynamoDB API ------------------------------------------------------

    def list_tables(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("list_tables", kwargs))
        if self.list_tables_error is not None:
            raise self.list_tables_error
        return {"TableNames": list(self.table_names)}

    def describe_table(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("describe_table", kwargs))
        if self.describe_error is not None:
            raise self.describe_error
        return {"Table": self.table_description}

    def query(self, **kwargs: Any) -> dict[str, Any]:
        return self._page("query", kwargs)

    def scan(self, **kwargs: Any) -> dict[str, Any]:
        return self._page("scan", kwargs)

    def _page(self, operation: str, kwargs: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((operation, kwargs))
        if self.request_error is not None:
            raise self.request_error
        if not self.pages:
            return {"Items": [], "Count": 0}
        return self.pages.pop(0)


def page(*items: dict[str, Any], last_key: dict[str, Any] | None = None) -> dict[str, Any]:
    """One query/scan response page."""
    response: dict[str, Any] = {"Items": list(items), "Count": len(items)}
    if last_key is not None:
        response["LastEvaluatedKey"] = last_key
    return response


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Each test sees fresh settings built from a clean environment, with no metadata calls."""
    for name in ("AWS_REGION", "AWS_PROFILE", "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DYNAMO_IMPORT_IMDS_REGION_LOOKUP", "false")
    reset_settings()
    clear_context()
    yield
    reset_settings()
    clear_context()


@pytest.fixture
def stub_client() -> StubDynamoClient:
    """Stub client that knows the Orders table and has no pages queued."""
    return StubDynamoClient(tables=["Orders", "Customers"])


@pytest.fixture
def orders_items() -> list[dict[str, Any]]:
    """Three Orders items in wire format."""
    return [
        {"id": {"S": "o-1"}, "year": {"N": "1985"}, "total": {"N": "12345678901234567890"}},
        {"id": {"S": "o-2"}, "year": {"N": "1985"}, "note": {"NULL": True}, "paid": {"BOOL": True}},
        {"id": {"S": "o-3"}, "year": {"N": "1985"}, "price": {"N": "19.990"}},
    ]
