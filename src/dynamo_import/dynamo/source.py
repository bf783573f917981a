"""
DynamoDB table as a pipeline source.

Wraps a data source plus one entity behind the framework ``Source`` /
``StreamingSource`` protocols::

    source = DynamoTableSource(
        "orders",
        properties={"region": "us-east-1"},
        attributes=[("tableName", "Orders")],
    )
    result = source.fetch()
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from dynamo_import.core.errors import DynamoImportError
from dynamo_import.dynamo.datasource import DynamoDataSource
from dynamo_import.dynamo.entity import DynamoEntityProcessor, EntityConfig
from dynamo_import.dynamo.normalizer import FieldMapping
from dynamo_import.dynamo.variables import ImportMode
from dynamo_import.framework.logging import get_logger, log_step
from dynamo_import.framework.sources import BaseSource, SourceResult, SourceType

logger = get_logger(__name__)


class DynamoTableSource(BaseSource):
    """
    One entity of one DynamoDB table.

    Every ``fetch``/``stream`` call opens a fresh cursor; the client is built
    once on first use and reused afterwards.
    """

    def __init__(
        self,
        name: str,
        properties: Mapping[str, Any] | None = None,
        attributes: Mapping[str, str] | Iterable[tuple[str, str]] = (),
        fields: Iterable[FieldMapping | Mapping[str, str]] = (),
        *,
        mode: ImportMode | str = ImportMode.FULL,
        data_source: DynamoDataSource | None = None,
    ):
        super().__init__(name, SourceType.DYNAMODB, config=dict(properties or {}))
        self.entity = EntityConfig.build(name, attributes, fields)
        self.mode = ImportMode(mode)
        self._data_source = data_source

    @property
    def supports_streaming(self) -> bool:
        return True

    @property
    def data_source(self) -> DynamoDataSource:
        if self._data_source is None:
            data_source = DynamoDataSource()
            data_source.init(self._config)
            self._data_source = data_source
        return self._data_source

    def _processor(self, params: dict[str, Any] | None) -> DynamoEntityProcessor:
        processor = DynamoEntityProcessor(
            self.data_source,
            self.entity,
            variables=params,
            mode=self.mode,
        )
        processor.init()
        return processor

    def fetch(self, params: dict[str, Any] | None = None) -> SourceResult:
        """Drain the entity into one result. Errors are captured, not raised."""
        metadata = self._create_metadata(params)
        rows: list[dict[str, Any]] = []
        try:
            with log_step("dynamo.fetch", source_name=self.name) as span:
                processor = self._processor(params)
                metadata.table_name = processor.table_name
                metadata.query = processor.query_spec.describe()
                cursor = processor.cursor
                metadata.operation = cursor.operation if cursor is not None else None
                while (row := processor.next_row()) is not None:
                    rows.append(row)
                if cursor is not None:
                    metadata.pages_fetched = cursor.pages_fetched
                span.add_metric("rows", len(rows))
        except Exception as e:
            error = self._wrap_error(e)
            logger.error("source_fetch_failed", **error.to_dict())
            return SourceResult.fail(error, metadata)

        metadata.duration_ms = int(span.duration_ms)
        return SourceResult.ok(rows, metadata)

    def stream(
        self,
        params: dict[str, Any] | None = None,
        batch_size: int = 1000,
    ) -> Iterator[list[dict[str, Any]]]:
        """Yield records in batches of ``batch_size``. Errors propagate."""
        if batch_size < 1:
            raise ValueError("batch_size must be positive")

        processor = self._processor(params)
        batch: list[dict[str, Any]] = []
        try:
            while (row := processor.next_row()) is not None:
                batch.append(row)
                if len(batch) >= batch_size:
                    yield batch
                    batch = []
            if batch:
                yield batch
        except DynamoImportError:
            raise
        except Exception as e:
            raise self._wrap_error(e) from e
        finally:
            processor.destroy()

    def close(self) -> None:
        if self._data_source is not None:
            self._data_source.close()
            self._data_source = None
