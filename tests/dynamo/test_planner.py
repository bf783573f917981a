"""Tests for query planning, pagination and error diagnostics."""

from decimal import Decimal
from unittest.mock import patch

import pytest

from dynamo_import.core.errors import ConfigurationError, RemotePermissionError, RemoteValidationError
from dynamo_import.dynamo.expressions import QuerySpec
from dynamo_import.dynamo.planner import (
    QUERY,
    SCAN,
    QueryPlanner,
    ResultCursor,
    deserialize_item,
    open_cursor,
    serialize_value,
    summarize_schema,
)
from tests.conftest import StubDynamoClient, client_error, page

ORDERS_SPEC = QuerySpec(
    key_condition_expression="#yr = :yyyy",
    name_map={"#yr": "year"},
    value_map={":yyyy": 1985},
)


class TestSerialization:
    def test_serialize_values(self):
        assert serialize_value(1985) == {"N": "1985"}
        assert serialize_value(True) == {"BOOL": True}
        assert serialize_value("open") == {"S": "open"}
        assert serialize_value(19.99) == {"N": "19.99"}

    def test_deserialize_item(self):
        item = deserialize_item({"id": {"S": "o-1"}, "n": {"N": "1"}, "x": {"NULL": True}})
        assert item == {"id": "o-1", "n": Decimal("1"), "x": None}


class TestBuildRequest:
    def test_scan_when_nothing_configured(self, stub_client):
        operation, request = QueryPlanner(stub_client).build_request("Orders", QuerySpec())
        assert operation == SCAN
        assert request == {"TableName": "Orders"}

    def test_query_with_key_condition(self, stub_client):
        operation, request = QueryPlanner(stub_client).build_request("Orders", ORDERS_SPEC)
        assert operation == QUERY
        assert request == {
            "TableName": "Orders",
            "KeyConditionExpression": "#yr = :yyyy",
            "ExpressionAttributeNames": {"#yr": "year"},
            "ExpressionAttributeValues": {":yyyy": {"N": "1985"}},
        }

    def test_filter_without_key_condition_is_scan(self, stub_client):
        spec = QuerySpec(filter_expression="paid = :p", value_map={":p": True})
        operation, request = QueryPlanner(stub_client).build_request("Orders", spec)
        assert operation == SCAN
        assert request == {
            "TableName": "Orders",
            "FilterExpression": "paid = :p",
            "ExpressionAttributeValues": {":p": {"BOOL": True}},
        }

    def test_filter_only_spec_reads_rows_through_scan(self, stub_client):
        stub_client.pages = [page({"id": {"S": "o-1"}, "paid": {"BOOL": True}})]
        spec = QuerySpec(filter_expression="paid = :p", value_map={":p": True})
        records = list(QueryPlanner(stub_client).open("Orders", spec))
        assert records == [{"id": "o-1", "paid": True}]
        assert stub_client.operations == ["list_tables", "scan"]
        assert stub_client.calls_to("scan")[0]["FilterExpression"] == "paid = :p"

    def test_projection_and_page_size(self, stub_client):
        spec = QuerySpec(projection_expression="id, #yr", name_map={"#yr": "year"})
        operation, request = QueryPlanner(stub_client, page_size=50).build_request("Orders", spec)
        assert operation == SCAN
        assert request["ProjectionExpression"] == "id, #yr"
        assert request["Limit"] == 50

    def test_page_size_from_settings(self, stub_client, monkeypatch):
        monkeypatch.setenv("DYNAMO_IMPORT_PAGE_SIZE", "25")
        _, request = QueryPlanner(stub_client).build_request("Orders", QuerySpec())
        assert request["Limit"] == 25


class TestResultCursor:
    def test_lazy_until_first_pull(self, stub_client, orders_items):
        stub_client.pages = [page(*orders_items)]
        cursor = QueryPlanner(stub_client).open("Orders", QuerySpec(), check_table=False)
        assert stub_client.operations == []
        assert cursor.has_next()
        assert stub_client.operations == [SCAN]

    def test_pages_through_last_evaluated_key(self, stub_client, orders_items):
        stub_client.pages = [
            page(orders_items[0], last_key={"id": {"S": "o-1"}}),
            page(orders_items[1], orders_items[2]),
        ]
        cursor = QueryPlanner(stub_client).open("Orders", ORDERS_SPEC, check_table=False)

        records = list(cursor)

        assert [r["id"] for r in records] == ["o-1", "o-2", "o-3"]
        queries = stub_client.calls_to(QUERY)
        assert len(queries) == 2
        assert "ExclusiveStartKey" not in queries[0]
        assert queries[1]["ExclusiveStartKey"] == {"id": {"S": "o-1"}}
        assert cursor.pages_fetched == 2
        assert cursor.items_returned == 3

    def test_next_page_fetched_only_when_buffer_empty(self, stub_client, orders_items):
        stub_client.pages = [
            page(orders_items[0], orders_items[1], last_key={"id": {"S": "o-2"}}),
            page(orders_items[2]),
        ]
        cursor = QueryPlanner(stub_client).open("Orders", QuerySpec(), check_table=False)
        cursor.next()
        cursor.next()
        assert len(stub_client.calls_to(SCAN)) == 1
        cursor.next()
        assert len(stub_client.calls_to(SCAN)) == 2

    def test_empty_pages_with_continuation_are_skipped(self, stub_client, orders_items):
        stub_client.pages = [page(last_key={"id": {"S": "x"}}), page(orders_items[0])]
        cursor = QueryPlanner(stub_client).open("Orders", QuerySpec(), check_table=False)
        assert cursor.has_next()
        assert cursor.next()["id"] == "o-1"
        assert not cursor.has_next()

    def test_records_are_normalized(self, stub_client, orders_items):
        stub_client.pages = [page(*orders_items)]
        records = list(QueryPlanner(stub_client).open("Orders", QuerySpec(), check_table=False))
        assert records[0]["total"] == "12345678901234567890"
        assert records[0]["year"] == "1985"
        assert "note" not in records[1]
        assert records[1]["paid"] is True
        assert records[2]["price"] == "19.990"

    def test_exhausted_cursor(self, stub_client):
        cursor = ResultCursor(stub_client, SCAN, {"TableName": "Orders"})
        assert not cursor.has_next()
        with pytest.raises(StopIteration):
            cursor.next()
        assert len(stub_client.calls_to(SCAN)) == 1

    def test_other_client_errors_propagate(self, stub_client):
        stub_client.request_error = client_error("ResourceNotFoundException")
        cursor = QueryPlanner(stub_client).open("Orders", QuerySpec(), check_table=False)
        with pytest.raises(Exception) as exc_info:
            cursor.has_next()
        assert exc_info.value is stub_client.request_error


class TestValidationFailure:
    def test_logs_diagnostics_and_raises_chained(self, stub_client):
        original = client_error("ValidationException", message="Query condition missed key schema element")
        stub_client.request_error = original
        cursor = QueryPlanner(stub_client).open("Orders", ORDERS_SPEC, check_table=False)

        with patch("dynamo_import.dynamo.planner.logger") as log:
            with pytest.raises(RemoteValidationError) as exc_info:
                cursor.next()

        error = exc_info.value
        assert error.__cause__ is original
        assert error.context.table_name == "Orders"
        assert "Key Condition: #yr = :yyyy" in error.context.metadata["query_spec"]
        assert "id(HASH)" in error.context.metadata["table_schema"]
        assert stub_client.calls_to("describe_table") == [{"TableName": "Orders"}]

        log.error.assert_called_once()
        assert log.error.call_args.args[0] == "dynamo_validation_failed"
        assert "year:N" in log.error.call_args.kwargs["table_schema"]

    def test_schema_unavailable_placeholder(self, stub_client):
        stub_client.request_error = client_error("ValidationException")
        stub_client.describe_error = client_error("AccessDeniedException", "DescribeTable")
        cursor = QueryPlanner(stub_client).open("Orders", QuerySpec(), check_table=False)

        with pytest.raises(RemoteValidationError) as exc_info:
            cursor.next()
        assert exc_info.value.context.metadata["table_schema"].startswith("<table schema unavailable")


class TestTableCheck:
    def test_known_table_passes(self, stub_client):
        QueryPlanner(stub_client).check_table("Orders")
        assert stub_client.operations == ["list_tables"]

    def test_unknown_table_lists_valid_tables(self, stub_client):
        with pytest.raises(ConfigurationError) as exc_info:
            QueryPlanner(stub_client).open("Ordres", QuerySpec())
        message = str(exc_info.value)
        assert "The dynamo table [Ordres] does not exist." in message
        assert "Orders" in message and "Customers" in message
        assert SCAN not in stub_client.operations

    def test_listing_capped(self, monkeypatch):
        monkeypatch.setenv("DYNAMO_IMPORT_TABLE_LIST_LIMIT", "2")
        client = StubDynamoClient(tables=["t1", "t2", "t3"])
        with pytest.raises(ConfigurationError) as exc_info:
            QueryPlanner(client).check_table("missing")
        assert "t3" not in str(exc_info.value)

    def test_access_denied_skips_check(self, stub_client):
        stub_client.list_tables_error = client_error("AccessDeniedException", "ListTables")
        stub_client.pages = [page({"id": {"S": "a"}})]
        records = list(QueryPlanner(stub_client).open("Orders", QuerySpec()))
        assert records == [{"id": "a"}]

    def test_other_listing_failures_are_ignored(self, stub_client):
        stub_client.list_tables_error = client_error("InternalServerError", "ListTables")
        QueryPlanner(stub_client).check_table("Anything")

    def test_list_tables_access_denied(self, stub_client):
        stub_client.list_tables_error = client_error("AccessDeniedException", "ListTables")
        with pytest.raises(RemotePermissionError):
            QueryPlanner(stub_client).list_tables()

    def test_list_tables_paginates(self):
        client = StubDynamoClient()
        responses = [
            {"TableNames": ["a", "b"], "LastEvaluatedTableName": "b"},
            {"TableNames": ["c"]},
        ]
        calls = []

        def list_tables(**kwargs):
            calls.append(kwargs)
            return responses.pop(0)

        client.list_tables = list_tables
        assert QueryPlanner(client).list_tables() == ["a", "b", "c"]
        assert calls == [{}, {"ExclusiveStartTableName": "b"}]

    def test_empty_account_skips_check(self):
        QueryPlanner(StubDynamoClient(tables=[])).check_table("Orders")


class TestSchemaSummary:
    def test_includes_indexes(self):
        table = {
            "AttributeDefinitions": [{"AttributeName": "id", "AttributeType": "S"}],
            "KeySchema": [{"AttributeName": "id", "KeyType": "HASH"}],
            "GlobalSecondaryIndexes": [
                {"IndexName": "by-year", "KeySchema": [{"AttributeName": "year", "KeyType": "HASH"}]}
            ],
        }
        assert summarize_schema(table) == "attributes: id:S | key: id(HASH) | indexes: by-year[year(HASH)]"


def test_open_cursor_shorthand(stub_client):
    stub_client.pages = [page({"id": {"S": "a"}})]
    assert list(open_cursor(stub_client, "Orders", QuerySpec())) == [{"id": "a"}]
