"""Region registry and ambient region lookup."""

from __future__ import annotations

import os
from collections.abc import Mapping
from functools import lru_cache

import botocore.session
from botocore.utils import InstanceMetadataRegionFetcher

from dynamo_import.core.settings import get_settings
from dynamo_import.framework.logging import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "dynamodb"


@lru_cache(maxsize=4)
def known_regions(service_name: str = SERVICE_NAME) -> tuple[str, ...]:
    """All region names botocore knows for ``service_name``, across partitions."""
    session = botocore.session.get_session()
    names: set[str] = set()
    for partition in session.get_available_partitions():
        names.update(session.get_available_regions(service_name, partition_name=partition))
    return tuple(sorted(names))


def is_known_region(name: str) -> bool:
    return name in known_regions()


def ambient_region(environ: Mapping[str, str] | None = None, *, imds_lookup: bool | None = None) -> str | None:
    """
    Region of the environment the process runs in, if it runs inside AWS.

    Lambda, ECS and CodeBuild export ``AWS_REGION``. On EC2 the instance
    metadata service is asked (one attempt, 1s timeout) unless
    ``DYNAMO_IMPORT_IMDS_REGION_LOOKUP=false``.
    """
    env = os.environ if environ is None else environ
    region = env.get("AWS_REGION", "").strip()
    if region:
        return region

    if imds_lookup is None:
        imds_lookup = get_settings().imds_region_lookup
    if imds_lookup:
        region = InstanceMetadataRegionFetcher(timeout=1, num_attempts=1).retrieve_region()
        if region:
            logger.debug("ambient_region_from_imds", region=region)
            return region
    return None


def resolve_region(
    configured: str | None,
    environ: Mapping[str, str] | None = None,
    *,
    imds_lookup: bool | None = None,
) -> str:
    """Explicit region, else the ambient region, else the default region."""
    if configured:
        return configured
    region = ambient_region(environ, imds_lookup=imds_lookup)
    if region:
        return region
    return get_settings().default_region
