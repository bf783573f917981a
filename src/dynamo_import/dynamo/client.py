"""DynamoDB client construction."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from botocore.config import Config

from dynamo_import.core.settings import get_settings
from dynamo_import.dynamo.credentials import CredentialResolver, CredentialSpec
from dynamo_import.dynamo.properties import DataSourceProperties
from dynamo_import.dynamo.regions import SERVICE_NAME, resolve_region
from dynamo_import.framework.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConnectionTarget:
    """Where and how to connect."""

    region: str
    endpoint: str | None = None
    connect_timeout: float = 30.0

    @classmethod
    def from_properties(
        cls,
        props: DataSourceProperties,
        environ: Mapping[str, str] | None = None,
    ) -> ConnectionTarget:
        return cls(
            region=resolve_region(props.region, environ),
            endpoint=props.endpoint,
            connect_timeout=get_settings().connect_timeout,
        )

    def client_config(self) -> Config:
        # Retries stay at the botocore default.
        return Config(connect_timeout=self.connect_timeout)


def build_client(
    credentials: CredentialSpec,
    target: ConnectionTarget,
    resolver: CredentialResolver | None = None,
) -> Any:
    """
    Build the DynamoDB client for ``credentials`` and ``target``.

    A custom endpoint takes precedence over the region-derived one; the region
    is still passed because request signing needs it.
    """
    resolver = resolver or CredentialResolver()
    session = resolver.session(credentials, target.region)

    client_kwargs: dict[str, Any] = {
        "service_name": SERVICE_NAME,
        "region_name": target.region,
        "config": target.client_config(),
    }
    if target.endpoint:
        client_kwargs["endpoint_url"] = target.endpoint

    client = session.client(**client_kwargs)

    logger.info(
        "dynamo_client_initialized",
        region=target.region,
        endpoint=target.endpoint,
        connect_timeout=target.connect_timeout,
        **credentials.describe(),
    )
    return client
