"""
Entity adapter between the host import pipeline and the connector core.

The pipeline configures one entity per table and then pulls rows one at a
time. :class:`DynamoEntityProcessor` parses the entity attributes once into a
:class:`~dynamo_import.dynamo.expressions.QuerySpec`, opens a cursor through
the data source and serves ``next_row()`` until it returns ``None``.

Delta imports pull from the same cursor through ``next_modified_row_key()``.
Delete detection is not supported: ``next_deleted_row_key()`` always returns
``None`` because it would need a full-table set difference against the index.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from dynamo_import.core.errors import ConfigurationError
from dynamo_import.dynamo.datasource import DynamoDataSource
from dynamo_import.dynamo.expressions import ExpressionParser, QuerySpec
from dynamo_import.dynamo.normalizer import FieldMapping
from dynamo_import.dynamo.planner import ResultCursor
from dynamo_import.dynamo.variables import DeltaContext, ImportMode, VariableResolver
from dynamo_import.framework.logging import bind_context, get_logger, log_step

logger = get_logger(__name__)

TABLE_NAME = "tableName"
REQUIRED_ATTRIBUTES = (TABLE_NAME,)


@dataclass
class EntityConfig:
    """One ``<entity>``: its name, ordered attributes and field mappings."""

    name: str
    attributes: list[tuple[str, str]] = field(default_factory=list)
    fields: list[FieldMapping] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        name: str,
        attributes: Mapping[str, str] | Iterable[tuple[str, str]],
        fields: Iterable[FieldMapping | Mapping[str, str]] = (),
    ) -> EntityConfig:
        pairs = list(attributes.items()) if isinstance(attributes, Mapping) else list(attributes)
        mappings = [f if isinstance(f, FieldMapping) else FieldMapping(**f) for f in fields]
        return cls(name=name, attributes=pairs, fields=mappings)

    def get(self, key: str) -> str | None:
        found = None
        for name, value in self.attributes:
            if name == key:
                found = value
        return found

    def field_mapping(self) -> dict[str, str]:
        """Source column -> index field name."""
        return {f.source: f.name for f in self.fields}


class DynamoEntityProcessor:
    """
    Pull-based reader for one entity.

    Args:
        data_source: Initialized data source (owns the client)
        entity: Entity configuration
        variables: Pipeline variables for ``${...}`` substitution
        mode: Full or delta import
    """

    def __init__(
        self,
        data_source: DynamoDataSource,
        entity: EntityConfig,
        *,
        variables: VariableResolver | Mapping[str, Any] | None = None,
        mode: ImportMode | str = ImportMode.FULL,
    ):
        self.data_source = data_source
        self.entity = entity
        if isinstance(variables, VariableResolver):
            self.resolver = variables
        else:
            self.resolver = VariableResolver(variables)
        self.delta = DeltaContext(mode=ImportMode(mode))
        self.table_name: str | None = None
        self.query_spec: QuerySpec | None = None
        self._rows: ResultCursor | None = None

    @property
    def cursor(self) -> ResultCursor | None:
        return self._rows

    def init(self) -> None:
        """Parse the entity, then open the cursor. Raises ConfigurationError."""
        bind_context(entity=self.entity.name, mode=self.delta.mode.value)
        logger.info("initializing_entity", entity=self.entity.name)

        self.validate_entity_attributes()
        if self.delta.is_delta:
            self.delta.inject(self.resolver)

        self.table_name = self.resolver.replace_tokens(self.entity.get(TABLE_NAME)).strip()
        if not self.table_name:
            raise ConfigurationError(
                f"entity [{self.entity.name}] attribute [{TABLE_NAME}] resolved to an empty name"
            ).with_context(entity=self.entity.name, attribute=TABLE_NAME)
        bind_context(table_name=self.table_name)

        with log_step("dynamo.entity_init", table_name=self.table_name):
            self.query_spec = self.build_query_spec()
            self._rows = self.data_source.get_data(self.table_name, self.query_spec, self.entity.fields)

    def validate_entity_attributes(self) -> None:
        missing = [
            key for key in REQUIRED_ATTRIBUTES
            if not (self.entity.get(key) or "").strip()
        ]
        if missing:
            raise ConfigurationError(
                f"entity [{self.entity.name}] is missing required attribute(s): {missing}"
            ).with_context(entity=self.entity.name, attribute=missing[0])

    def build_query_spec(self) -> QuerySpec:
        parser = ExpressionParser(self.entity.attributes, resolver=self.resolver, delta=self.delta)
        return parser.parse()

    def next_row(self) -> dict[str, Any] | None:
        """Next normalized record, or ``None`` once the sequence is exhausted."""
        if self._rows is None:
            return None

        try:
            if self._rows.has_next():
                return self._rows.next()
        except Exception as e:
            logger.warning(
                "entity_row_failed",
                entity=self.entity.name,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

        logger.info(
            "entity_exhausted",
            entity=self.entity.name,
            rows=self._rows.items_returned,
            pages=self._rows.pages_fetched,
        )
        self._rows = None
        return None

    def next_modified_row_key(self) -> dict[str, Any] | None:
        return self.next_row()

    def next_deleted_row_key(self) -> dict[str, Any] | None:
        return None

    def destroy(self) -> None:
        self._rows = None
