"""
Query planning and lazy pagination.

:class:`QueryPlanner` decides between Query and Scan for a
:class:`~dynamo_import.dynamo.expressions.QuerySpec`, and hands back a
:class:`ResultCursor` that pages through the table on demand::

    planner = QueryPlanner(client)
    cursor = planner.open("Orders", spec)
    while cursor.has_next():
        record = cursor.next()

Nothing is fetched until the first ``has_next()``/``next()``. A page is
requested only when the buffered items of the previous one are used up.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterator
from decimal import Decimal
from typing import Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from dynamo_import.core.errors import (
    ConfigurationError,
    RemotePermissionError,
    RemoteValidationError,
)
from dynamo_import.core.settings import get_settings
from dynamo_import.dynamo.expressions import QuerySpec
from dynamo_import.dynamo.normalizer import RecordNormalizer
from dynamo_import.framework.logging import get_logger, log_step

logger = get_logger(__name__)

ERROR_ACCESS_DENIED = "AccessDeniedException"
ERROR_VALIDATION = "ValidationException"

QUERY = "query"
SCAN = "scan"

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def serialize_value(value: Any) -> dict[str, Any]:
    """Typed AttributeValue for a bound literal."""
    if isinstance(value, float):
        value = Decimal(repr(value))
    return _serializer.serialize(value)


def deserialize_item(item: dict[str, Any]) -> dict[str, Any]:
    return {name: _deserializer.deserialize(value) for name, value in item.items()}


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class ResultCursor(Iterator[dict[str, Any]]):
    """
    Forward-only, single-pass cursor over the records of one request.

    Iterating it twice does not restart the request; once exhausted it stays
    exhausted.
    """

    def __init__(
        self,
        client: Any,
        operation: str,
        request: dict[str, Any],
        normalizer: RecordNormalizer | None = None,
        on_validation_error: Callable[[ClientError], Exception] | None = None,
    ):
        self._client = client
        self._operation = operation
        self._request = request
        self._normalizer = normalizer or RecordNormalizer()
        self._on_validation_error = on_validation_error
        self._buffer: deque[dict[str, Any]] = deque()
        self._last_key: dict[str, Any] | None = None
        self._done = False
        self.pages_fetched = 0
        self.items_returned = 0

    @property
    def operation(self) -> str:
        return self._operation

    @property
    def request(self) -> dict[str, Any]:
        return dict(self._request)

    def has_next(self) -> bool:
        """True when another record is available, fetching pages as needed."""
        while not self._buffer and not self._done:
            self._fetch_page()
        return bool(self._buffer)

    def next(self) -> dict[str, Any]:
        if not self.has_next():
            raise StopIteration
        self.items_returned += 1
        return self._normalizer.normalize(self._buffer.popleft())

    def __next__(self) -> dict[str, Any]:
        return self.next()

    def __iter__(self) -> ResultCursor:
        return self

    def _fetch_page(self) -> None:
        request = dict(self._request)
        if self._last_key:
            request["ExclusiveStartKey"] = self._last_key

        call = getattr(self._client, self._operation)
        with log_step(
            "dynamo.page_fetch",
            level="debug",
            log_start=False,
            operation=self._operation,
            page=self.pages_fetched + 1,
        ) as span:
            try:
                page = call(**request)
            except ClientError as e:
                if error_code(e) == ERROR_VALIDATION and self._on_validation_error is not None:
                    raise self._on_validation_error(e) from e
                raise
            items = page.get("Items", [])
            span.add_metric("items", len(items))

        self.pages_fetched += 1
        self._buffer.extend(deserialize_item(item) for item in items)
        self._last_key = page.get("LastEvaluatedKey")
        self._done = not self._last_key


class QueryPlanner:
    """
    Issues the Query or Scan for a QuerySpec against one client.

    Args:
        client: boto3 DynamoDB client
        normalizer: Record normalizer applied to every item
        page_size: Optional ``Limit`` per request (defaults to settings)
    """

    def __init__(
        self,
        client: Any,
        *,
        normalizer: RecordNormalizer | None = None,
        page_size: int | None = None,
    ):
        settings = get_settings()
        self._client = client
        self._normalizer = normalizer or RecordNormalizer()
        self._page_size = page_size if page_size is not None else settings.page_size
        self._table_list_limit = settings.table_list_limit

    # -------------------------------------------------------------------------
    # REQUESTS
    # -------------------------------------------------------------------------

    def build_request(self, table_name: str, spec: QuerySpec) -> tuple[str, dict[str, Any]]:
        """Return ``(operation, request kwargs)`` for a QuerySpec."""
        request: dict[str, Any] = {"TableName": table_name}
        operation = QUERY if spec.key_condition_expression else SCAN

        if spec.projection_expression:
            request["ProjectionExpression"] = spec.projection_expression
        if operation == QUERY and spec.key_condition_expression:
            request["KeyConditionExpression"] = spec.key_condition_expression
        if spec.filter_expression:
            request["FilterExpression"] = spec.filter_expression
        if spec.name_map:
            request["ExpressionAttributeNames"] = dict(spec.name_map)
        if spec.value_map:
            request["ExpressionAttributeValues"] = {
                placeholder: serialize_value(value) for placeholder, value in spec.value_map.items()
            }
        if self._page_size:
            request["Limit"] = self._page_size
        return operation, request

    def open(self, table_name: str, spec: QuerySpec, *, check_table: bool = True) -> ResultCursor:
        """Pre-check the table and return a lazy cursor over the results."""
        if check_table:
            self.check_table(table_name)

        operation, request = self.build_request(table_name, spec)
        logger.info(
            "dynamo_request_planned",
            operation=operation,
            table_name=table_name,
            **spec.to_log_dict(),
        )

        def on_validation_error(error: ClientError) -> Exception:
            return self._validation_failure(table_name, operation, spec, error)

        return ResultCursor(
            self._client,
            operation,
            request,
            normalizer=self._normalizer,
            on_validation_error=on_validation_error,
        )

    # -------------------------------------------------------------------------
    # TABLE PRE-CHECK
    # -------------------------------------------------------------------------

    def list_tables(self) -> list[str]:
        """All table names visible to the client."""
        names: list[str] = []
        request: dict[str, Any] = {}
        while True:
            try:
                page = self._client.list_tables(**request)
            except ClientError as e:
                if error_code(e) == ERROR_ACCESS_DENIED:
                    raise RemotePermissionError(
                        "Permission denied to list tables", cause=e
                    ).with_context(error_code=ERROR_ACCESS_DENIED) from e
                raise
            names.extend(page.get("TableNames", []))
            last = page.get("LastEvaluatedTableName")
            if not last:
                return names
            request = {"ExclusiveStartTableName": last}

    def check_table(self, table_name: str) -> None:
        """
        Fail early when the table is known not to exist.

        Best effort: lack of permission to list tables skips the check, other
        listing failures are logged and ignored.
        """
        try:
            names = self.list_tables()
        except RemotePermissionError:
            logger.debug("list_tables_denied", table_name=table_name)
            return
        except (ClientError, BotoCoreError) as e:
            logger.warning("list_tables_failed", table_name=table_name, error=str(e))
            return

        if names and table_name not in names:
            shown = names[: self._table_list_limit]
            raise ConfigurationError(
                f"The dynamo table [{table_name}] does not exist.  Valid tables: {shown}"
            ).with_context(table_name=table_name, attribute="tableName")

    # -------------------------------------------------------------------------
    # DIAGNOSTICS
    # -------------------------------------------------------------------------

    def describe_schema(self, table_name: str) -> str:
        """Compact attribute/key/index summary of the table, or a placeholder."""
        try:
            table = self._client.describe_table(TableName=table_name)["Table"]
        except (ClientError, BotoCoreError, KeyError) as e:
            return f"<table schema unavailable: {e}>"
        return summarize_schema(table)

    def _validation_failure(
        self,
        table_name: str,
        operation: str,
        spec: QuerySpec,
        error: ClientError,
    ) -> RemoteValidationError:
        schema = self.describe_schema(table_name)
        logger.error(
            "dynamo_validation_failed",
            table_name=table_name,
            operation=operation,
            error=str(error),
            query_spec=spec.describe(),
            table_schema=schema,
        )
        return RemoteValidationError(
            f"DynamoDB rejected the {operation} on [{table_name}]: {error}",
            cause=error,
        ).with_context(
            table_name=table_name,
            error_code=ERROR_VALIDATION,
            operation=operation,
            query_spec=spec.describe(),
            table_schema=schema,
        )


def summarize_schema(table: dict[str, Any]) -> str:
    """``attributes: id:S, year:N | key: id(HASH), year(RANGE) | indexes: ...``"""

    def keys(schema: list[dict[str, str]]) -> str:
        return ", ".join(f"{k['AttributeName']}({k['KeyType']})" for k in schema)

    parts = [
        "attributes: " + ", ".join(
            f"{a['AttributeName']}:{a['AttributeType']}" for a in table.get("AttributeDefinitions", [])
        ),
        "key: " + keys(table.get("KeySchema", [])),
    ]
    indexes = table.get("GlobalSecondaryIndexes", []) + table.get("LocalSecondaryIndexes", [])
    if indexes:
        parts.append(
            "indexes: " + ", ".join(f"{i['IndexName']}[{keys(i.get('KeySchema', []))}]" for i in indexes)
        )
    return " | ".join(parts)


def open_cursor(client: Any, table_name: str, spec: QuerySpec, **kwargs: Any) -> ResultCursor:
    """Shorthand for ``QueryPlanner(client).open(table_name, spec)``."""
    return QueryPlanner(client, **kwargs).open(table_name, spec)
