"""Data source properties.

The host configuration layer hands the data source a flat map of strings
(XML attributes on ``<dataSource>``). :class:`DataSourceProperties` parses
that map once, keeping the camelCase names as aliases::

    props = DataSourceProperties.from_properties({
        "region": "eu-west-1",
        "stsRoleARN": "arn:aws:iam::123456789012:role/solr-import",
        "stsDuration": "900",
    })
    props.sts_duration  # 900
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from dynamo_import.core.errors import ConfigurationError

ENDPOINT = "endpoint"
REGION = "region"
STS_ROLE = "stsRoleARN"
STS_ENDPOINT = "stsEndpoint"
STS_DURATION = "stsDuration"
ACCESS_KEY = "accessKeyId"
SECRET_KEY = "secretKeyId"
CREDENTIALS_PROFILES_FILE = "credentialProfilesFile"
CREDENTIALS_PROFILE_NAME = "credentialProfileName"
USE_DEFAULT_PROFILES = "credentialUseProfileDefaults"
USE_JAVA_PROPERTIES = "credentialUseJavaProperties"
CONVERT_FIELD_TYPES = "convertType"


class DataSourceProperties(BaseModel):
    """Validated ``<dataSource>`` attributes. Blank strings read as unset."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    endpoint: str | None = Field(default=None, alias=ENDPOINT)
    region: str | None = Field(default=None, alias=REGION)

    sts_role_arn: str | None = Field(default=None, alias=STS_ROLE)
    sts_endpoint: str | None = Field(default=None, alias=STS_ENDPOINT)
    sts_duration: int | None = Field(default=None, alias=STS_DURATION)

    access_key_id: str | None = Field(default=None, alias=ACCESS_KEY)
    secret_key_id: str | None = Field(default=None, alias=SECRET_KEY, repr=False)
    credential_profiles_file: str | None = Field(default=None, alias=CREDENTIALS_PROFILES_FILE)
    credential_profile_name: str | None = Field(default=None, alias=CREDENTIALS_PROFILE_NAME)
    credential_use_profile_defaults: bool = Field(default=False, alias=USE_DEFAULT_PROFILES)
    credential_use_java_properties: bool = Field(default=False, alias=USE_JAVA_PROPERTIES)

    convert_type: bool = Field(default=False, alias=CONVERT_FIELD_TYPES)

    @field_validator("*", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if value == "":
                return None
        return value

    @field_validator(
        "credential_use_profile_defaults",
        "credential_use_java_properties",
        "convert_type",
        mode="before",
    )
    @classmethod
    def _parse_flag(cls, value: Any) -> bool:
        # Anything other than "true" (any case) is false.
        if value is None:
            return False
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() == "true"

    @field_validator("sts_duration", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> int | None:
        if value is None or isinstance(value, int):
            return value
        if str(value).strip() == "":
            return None
        try:
            return int(str(value).strip())
        except ValueError:
            raise ValueError(f"must be an integer value, not '{value}'") from None

    @classmethod
    def from_properties(cls, properties: Mapping[str, Any]) -> DataSourceProperties:
        """Parse a raw property map, raising ConfigurationError on bad values."""
        try:
            return cls.model_validate(dict(properties))
        except ValidationError as e:
            problems = []
            for err in e.errors():
                attribute = ".".join(str(part) for part in err["loc"]) or "?"
                problems.append(f"attribute [{attribute}] {err['msg']}")
            raise ConfigurationError(
                "Invalid data source configuration: " + "; ".join(problems),
                cause=e,
            ) from e

    def to_log_dict(self) -> dict[str, Any]:
        """Non-secret, non-empty properties for logging."""
        data = self.model_dump(by_alias=True, exclude_none=True, exclude={"secret_key_id"})
        if self.access_key_id:
            data[ACCESS_KEY] = _mask(self.access_key_id)
        return data


def _mask(value: str) -> str:
    if len(value) <= 4:
        return "****"
    return value[:4] + "*" * (len(value) - 4)
