"""
DynamoDB data source.

One data source owns one client, built once from the ``<dataSource>``
properties and shared by every entity query it serves::

    source = DynamoDataSource()
    source.init({"region": "eu-west-1", "credentialProfileName": "indexer"})
    cursor = source.get_data("Orders", spec, fields)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from botocore.exceptions import BotoCoreError

from dynamo_import.core.errors import ConfigurationError
from dynamo_import.dynamo import properties as P
from dynamo_import.dynamo.client import ConnectionTarget, build_client
from dynamo_import.dynamo.credentials import CredentialResolver, CredentialSpec
from dynamo_import.dynamo.expressions import QuerySpec
from dynamo_import.dynamo.normalizer import DynamoType, FieldMapping, RecordNormalizer, build_type_map
from dynamo_import.dynamo.planner import QueryPlanner, ResultCursor
from dynamo_import.dynamo.properties import DataSourceProperties
from dynamo_import.framework.logging import get_logger, log_step

logger = get_logger(__name__)

ClientFactory = Callable[[CredentialSpec, ConnectionTarget, CredentialResolver], Any]


class DynamoDataSource:
    """Builds the client at ``init()`` and serves cursors from ``get_data()``."""

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        *,
        environ: Mapping[str, str] | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self._resolver = resolver or CredentialResolver(environ=environ)
        self._environ = environ
        self._client_factory = client_factory or build_client
        self.client: Any = None
        self.properties: DataSourceProperties | None = None
        self.credentials: CredentialSpec | None = None
        self.target: ConnectionTarget | None = None

    @classmethod
    def from_client(cls, client: Any, properties: Mapping[str, Any] | None = None) -> DynamoDataSource:
        """Wrap an already constructed client (local tooling, tests)."""
        source = cls()
        source.properties = DataSourceProperties.from_properties(properties or {})
        source.client = client
        return source

    @property
    def explicit_type_mapping(self) -> bool:
        return bool(self.properties and self.properties.convert_type)

    def init(self, properties: Mapping[str, Any]) -> None:
        """Validate the properties and build the client. Raises ConfigurationError."""
        with log_step("dynamo.datasource_init"):
            props = DataSourceProperties.from_properties(properties)
            logger.debug("datasource_properties", **props.to_log_dict())

            credentials = self._resolver.resolve(props)
            target = ConnectionTarget.from_properties(props, self._environ)
            try:
                client = self._client_factory(credentials, target, self._resolver)
            except (BotoCoreError, ValueError) as e:
                raise ConfigurationError(
                    f"Error creating dynamo client: {e}",
                    cause=e,
                ).with_context(region=target.region, endpoint=target.endpoint) from e

        self.properties = props
        self.credentials = credentials
        self.target = target
        self.client = client

    def get_field_type_mapping(self, fields: Iterable[FieldMapping]) -> dict[str, DynamoType]:
        """Column -> declared type, only when ``convertType`` is enabled."""
        if not self.explicit_type_mapping:
            return {}
        type_map = build_type_map(fields)
        logger.debug(
            "field_type_map_built",
            attribute=P.CONVERT_FIELD_TYPES,
            entries=len(type_map),
        )
        return type_map

    def get_data(
        self,
        table_name: str,
        spec: QuerySpec,
        fields: Iterable[FieldMapping] = (),
    ) -> ResultCursor:
        """Check the table and open a lazy cursor over the matching records."""
        if self.client is None:
            raise ConfigurationError("Data source is not initialized; call init() first")

        normalizer = RecordNormalizer(self.get_field_type_mapping(fields))
        planner = QueryPlanner(self.client, normalizer=normalizer)
        return planner.open(table_name, spec)

    def close(self) -> None:
        logger.debug("closing_data_source")
        self.client = None
