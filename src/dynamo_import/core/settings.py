"""Process-level settings for the DynamoDB import connector.

Connector behaviour that is not part of a data-source definition (logging,
connection policy, paging, table-listing output) is read once from
``DYNAMO_IMPORT_*`` environment variables or a ``.env`` file.

Examples:
    >>> from dynamo_import.core.settings import get_settings
    >>> get_settings().default_region
    'us-east-1'
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ImportSettings(BaseSettings):
    """Connector settings loaded from the environment.

    Fields
    ──────
    log_level             : Structlog log level
    log_format            : ``console`` or ``json`` renderer
    default_region        : Region used when neither config nor environment names one
    connect_timeout       : Connection-establishment timeout in seconds
    page_size             : Optional ``Limit`` sent with every query/scan page
    imds_region_lookup    : Ask EC2 instance metadata for the ambient region (false opts out)
    table_list_limit      : Table names listed in a "table does not exist" error
    """

    model_config = SettingsConfigDict(
        env_prefix="DYNAMO_IMPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Logging ──────────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"

    # ── Connection ───────────────────────────────────────────────
    default_region: str = Field(default="us-east-1")
    connect_timeout: float = Field(default=30.0, gt=0)
    imds_region_lookup: bool = Field(default=True)

    # ── Paging ───────────────────────────────────────────────────
    page_size: int | None = Field(default=None, gt=0)

    # ── Diagnostics ──────────────────────────────────────────────
    table_list_limit: int = Field(default=20, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> ImportSettings:
    """Return the cached settings instance."""
    return ImportSettings()


def reset_settings() -> None:
    """Drop the cached settings (for testing)."""
    get_settings.cache_clear()
