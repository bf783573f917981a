"""Tests for the pipeline-facing table source."""

from unittest.mock import patch

import pytest

from dynamo_import.core.errors import ConfigurationError, RemoteError, RemoteValidationError
from dynamo_import.dynamo.datasource import DynamoDataSource
from dynamo_import.dynamo.source import DynamoTableSource
from dynamo_import.framework.sources import Source, SourceType, StreamingSource
from tests.conftest import client_error, page


def table_source(client, attributes=(("tableName", "Orders"),), **kwargs):
    return DynamoTableSource(
        "orders",
        attributes=list(attributes),
        data_source=DynamoDataSource.from_client(client),
        **kwargs,
    )


class TestProtocol:
    def test_is_streaming_source(self, stub_client):
        source = table_source(stub_client)
        assert isinstance(source, Source)
        assert isinstance(source, StreamingSource)
        assert source.source_type is SourceType.DYNAMODB
        assert source.supports_streaming


class TestFetch:
    def test_fetch_all_records(self, stub_client, orders_items):
        stub_client.pages = [page(orders_items[0], last_key={"id": {"S": "o-1"}}), page(*orders_items[1:])]
        result = table_source(stub_client).fetch()

        assert result.success
        assert [r["id"] for r in result.data] == ["o-1", "o-2", "o-3"]
        meta = result.metadata
        assert meta.row_count == 3
        assert meta.pages_fetched == 2
        assert meta.operation == "scan"
        assert meta.table_name == "Orders"
        assert "Key Condition: None" in meta.query
        assert meta.duration_ms is not None

    def test_fetch_captures_errors(self, stub_client):
        stub_client.request_error = client_error("ValidationException")
        result = table_source(stub_client).fetch()
        assert not result.success
        assert isinstance(result.error, RemoteValidationError)
        with pytest.raises(RemoteValidationError):
            result.unwrap()

    def test_fetch_wraps_foreign_errors(self, stub_client):
        stub_client.request_error = client_error("ProvisionedThroughputExceededException")
        result = table_source(stub_client).fetch()
        assert isinstance(result.error, RemoteError)
        assert result.error.context.metadata["source_name"] == "orders"

    def test_fetch_configuration_error(self, stub_client):
        result = table_source(stub_client, attributes=[]).fetch()
        assert isinstance(result.error, ConfigurationError)

    def test_params_are_pipeline_variables(self, stub_client):
        result = table_source(stub_client, attributes=[("tableName", "${env.table}")]).fetch(
            {"env.table": "Orders"}
        )
        assert result.success
        assert result.metadata.params == {"env.table": "Orders"}


class TestStream:
    def test_batches(self, stub_client, orders_items):
        stub_client.pages = [page(*orders_items)]
        batches = list(table_source(stub_client).stream(batch_size=2))
        assert [len(b) for b in batches] == [2, 1]

    def test_invalid_batch_size(self, stub_client):
        with pytest.raises(ValueError):
            list(table_source(stub_client).stream(batch_size=0))

    def test_foreign_errors_wrapped(self, stub_client):
        stub_client.request_error = client_error("InternalServerError")
        with pytest.raises(RemoteError):
            list(table_source(stub_client).stream())


class TestLazyDataSource:
    def test_data_source_built_from_properties(self, stub_client):
        with patch("dynamo_import.dynamo.source.DynamoDataSource") as cls:
            cls.return_value.client = stub_client
            source = DynamoTableSource("orders", {"region": "eu-west-1"}, [("tableName", "Orders")])
            assert source.data_source is cls.return_value
            assert source.data_source is cls.return_value
        cls.return_value.init.assert_called_once_with({"region": "eu-west-1"})

    def test_close(self, stub_client):
        source = table_source(stub_client)
        data_source = source.data_source
        source.close()
        assert data_source.client is None
