"""
Credential resolution for the DynamoDB client.

Exactly one credential source is chosen from the data source properties,
first match wins:

    1. credentialUseProfileDefaults=true   -> default profile, default file
    2. credentialProfilesFile (+ name)     -> named profile from that file
    3. credentialProfileName               -> named profile, default file
    4. accessKeyId + secretKeyId           -> static keys
    5. credentialUseJavaProperties=true    -> AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY
    6. nothing configured                  -> boto3 default provider chain

When ``stsRoleARN`` is set the resolved credentials are only used to call
STS AssumeRole; the temporary credentials it returns replace them for every
DynamoDB call.

All validation happens in :meth:`CredentialResolver.validate` before any
network call, so a bad configuration never produces a half-built client.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import boto3
import botocore.session
from botocore.exceptions import BotoCoreError, ClientError

from dynamo_import.core.errors import ConfigurationError
from dynamo_import.dynamo import properties as P
from dynamo_import.dynamo.properties import DataSourceProperties
from dynamo_import.dynamo.regions import known_regions
from dynamo_import.framework.logging import get_logger

logger = get_logger(__name__)

# Environment counterparts of the JVM's aws.accessKeyId / aws.secretKey properties.
JAVA_PROPS_ACCESS_KEY = "AWS_ACCESS_KEY_ID"
JAVA_PROPS_SECRET_KEY = "AWS_SECRET_ACCESS_KEY"

STS_ROLE_SESSION_NAME = "Solr-DynamoDataImportHandler"
DEFAULT_PROFILE_NAME = "default"


class CredentialSource(str, Enum):
    """Where the base credentials come from."""

    DEFAULT_PROFILE = "default_profile"
    PROFILE_FILE = "profile_file"
    NAMED_PROFILE = "named_profile"
    STATIC_KEYS = "static_keys"
    SYSTEM_PROPERTIES = "system_properties"
    DEFAULT_CHAIN = "default_chain"


@dataclass(frozen=True)
class RoleAssumption:
    """STS AssumeRole parameters."""

    role_arn: str
    session_name: str = STS_ROLE_SESSION_NAME
    endpoint: str | None = None
    duration_seconds: int | None = None


@dataclass(frozen=True)
class CredentialSpec:
    """The selected credential source and what it needs."""

    source: CredentialSource
    access_key_id: str | None = field(default=None, repr=False)
    secret_access_key: str | None = field(default=None, repr=False)
    profile_name: str | None = None
    profiles_file: str | None = None
    role: RoleAssumption | None = None

    def describe(self) -> dict[str, Any]:
        """Loggable summary; never includes key material."""
        result: dict[str, Any] = {"credential_source": self.source.value}
        if self.profile_name:
            result["profile_name"] = self.profile_name
        if self.profiles_file:
            result["profiles_file"] = self.profiles_file
        if self.role:
            result["role_arn"] = self.role.role_arn
            if self.role.endpoint:
                result["sts_endpoint"] = self.role.endpoint
            if self.role.duration_seconds:
                result["sts_duration"] = self.role.duration_seconds
        return result


SessionFactory = Callable[..., boto3.Session]


class CredentialResolver:
    """
    Validates credential options, selects a CredentialSpec and turns it into
    a boto3 session.

    Args:
        environ: Environment used for rule 5 (defaults to ``os.environ``)
        session_factory: Callable building a ``boto3.Session`` (injectable for tests)
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        session_factory: SessionFactory | None = None,
    ):
        self._environ = os.environ if environ is None else environ
        self._session_factory = session_factory or boto3.Session

    # -------------------------------------------------------------------------
    # VALIDATION
    # -------------------------------------------------------------------------

    def validate(self, props: DataSourceProperties) -> None:
        """Reject malformed or contradictory options. Raises ConfigurationError."""
        if props.access_key_id and not props.secret_key_id:
            raise _config_error(
                f"if attribute [{P.ACCESS_KEY}] is set, attribute [{P.SECRET_KEY}] must also be set",
                P.SECRET_KEY,
            )

        if props.credential_use_java_properties and not self._has_environment_keys():
            raise _config_error(
                f"attribute [{P.USE_JAVA_PROPERTIES}] is true, but the properties are not defined: "
                f"('{JAVA_PROPS_ACCESS_KEY}', '{JAVA_PROPS_SECRET_KEY}')",
                P.USE_JAVA_PROPERTIES,
            )

        if props.credential_use_profile_defaults and props.credential_profiles_file:
            raise _config_error(
                f"if attribute [{P.USE_DEFAULT_PROFILES}] is set, "
                f"attribute [{P.CREDENTIALS_PROFILES_FILE}] cannot also be set",
                P.CREDENTIALS_PROFILES_FILE,
            )

        if props.credential_profiles_file and not props.credential_profile_name:
            raise _config_error(
                f"if attribute [{P.CREDENTIALS_PROFILES_FILE}] is set, "
                f"attribute [{P.CREDENTIALS_PROFILE_NAME}] must also be set",
                P.CREDENTIALS_PROFILE_NAME,
            )

        if props.endpoint and not props.region:
            raise _config_error(
                f"if attribute [{P.ENDPOINT}] is set, attribute [{P.REGION}] must also be set",
                P.REGION,
            )

        if props.region and props.region not in known_regions():
            raise _config_error(
                f"Invalid attribute [{P.REGION}] value: '{props.region}'... "
                f"valid regions: {list(known_regions())}",
                P.REGION,
            )

        configured = self._configured_sources(props)
        if len(configured) > 1:
            raise _config_error(
                f"more than one credential source is configured: {configured}; choose one",
                configured[0],
            )

    def _has_environment_keys(self) -> bool:
        return bool(self._environ.get(JAVA_PROPS_ACCESS_KEY)) and bool(
            self._environ.get(JAVA_PROPS_SECRET_KEY)
        )

    @staticmethod
    def _configured_sources(props: DataSourceProperties) -> list[str]:
        sources = []
        if props.credential_use_profile_defaults:
            sources.append(P.USE_DEFAULT_PROFILES)
        if props.credential_profiles_file or props.credential_profile_name:
            sources.append(P.CREDENTIALS_PROFILES_FILE if props.credential_profiles_file else P.CREDENTIALS_PROFILE_NAME)
        if props.access_key_id:
            sources.append(P.ACCESS_KEY)
        if props.credential_use_java_properties:
            sources.append(P.USE_JAVA_PROPERTIES)
        return sources

    # -------------------------------------------------------------------------
    # SELECTION
    # -------------------------------------------------------------------------

    def resolve(self, props: DataSourceProperties) -> CredentialSpec:
        """Validate and select the credential source."""
        self.validate(props)

        role = None
        if props.sts_role_arn:
            role = RoleAssumption(
                role_arn=props.sts_role_arn,
                endpoint=props.sts_endpoint,
                duration_seconds=props.sts_duration or None,
            )

        if props.credential_use_profile_defaults:
            spec = CredentialSpec(
                CredentialSource.DEFAULT_PROFILE,
                profile_name=self._environ.get("AWS_PROFILE") or DEFAULT_PROFILE_NAME,
                role=role,
            )
        elif props.credential_profiles_file:
            spec = CredentialSpec(
                CredentialSource.PROFILE_FILE,
                profile_name=props.credential_profile_name,
                profiles_file=props.credential_profiles_file,
                role=role,
            )
        elif props.credential_profile_name:
            spec = CredentialSpec(
                CredentialSource.NAMED_PROFILE,
                profile_name=props.credential_profile_name,
                role=role,
            )
        elif props.access_key_id and props.secret_key_id:
            spec = CredentialSpec(
                CredentialSource.STATIC_KEYS,
                access_key_id=props.access_key_id,
                secret_access_key=props.secret_key_id,
                role=role,
            )
        elif props.credential_use_java_properties:
            spec = CredentialSpec(
                CredentialSource.SYSTEM_PROPERTIES,
                access_key_id=self._environ.get(JAVA_PROPS_ACCESS_KEY),
                secret_access_key=self._environ.get(JAVA_PROPS_SECRET_KEY),
                role=role,
            )
        else:
            spec = CredentialSpec(CredentialSource.DEFAULT_CHAIN, role=role)

        logger.info("credential_provider_selected", **spec.describe())
        return spec

    # -------------------------------------------------------------------------
    # SESSION CONSTRUCTION
    # -------------------------------------------------------------------------

    def session(self, spec: CredentialSpec, region: str) -> boto3.Session:
        """Build the session used for DynamoDB, assuming the role if one is set."""
        base = self._base_session(spec, region)
        if spec.role is None:
            return base
        return self.assume_role(base, spec.role, region)

    def _base_session(self, spec: CredentialSpec, region: str) -> boto3.Session:
        try:
            match spec.source:
                case CredentialSource.DEFAULT_PROFILE | CredentialSource.NAMED_PROFILE:
                    return self._session_factory(profile_name=spec.profile_name, region_name=region)
                case CredentialSource.PROFILE_FILE:
                    core = botocore.session.Session()
                    core.set_config_variable("credentials_file", os.path.expanduser(spec.profiles_file))
                    return self._session_factory(
                        botocore_session=core,
                        profile_name=spec.profile_name,
                        region_name=region,
                    )
                case CredentialSource.STATIC_KEYS | CredentialSource.SYSTEM_PROPERTIES:
                    return self._session_factory(
                        aws_access_key_id=spec.access_key_id,
                        aws_secret_access_key=spec.secret_access_key,
                        region_name=region,
                    )
                case _:
                    return self._session_factory(region_name=region)
        except BotoCoreError as e:
            raise ConfigurationError(
                f"Cannot load credentials ({spec.source.value}): {e}",
                cause=e,
            ).with_context(**spec.describe()) from e

    def assume_role(self, base: boto3.Session, role: RoleAssumption, region: str) -> boto3.Session:
        """Exchange the base credentials for temporary role credentials."""
        logger.info("assuming_role", role_arn=role.role_arn, sts_endpoint=role.endpoint)

        client_kwargs: dict[str, Any] = {"region_name": region}
        if role.endpoint:
            client_kwargs["endpoint_url"] = role.endpoint

        request: dict[str, Any] = {
            "RoleArn": role.role_arn,
            "RoleSessionName": role.session_name,
        }
        if role.duration_seconds:
            request["DurationSeconds"] = role.duration_seconds

        try:
            sts = base.client("sts", **client_kwargs)
            response = sts.assume_role(**request)
        except (ClientError, BotoCoreError) as e:
            raise ConfigurationError(
                f"Failed to assume role [{role.role_arn}]: {e}",
                cause=e,
            ).with_context(attribute=P.STS_ROLE, role_arn=role.role_arn) from e

        credentials = response["Credentials"]
        logger.info(
            "role_assumed",
            role_arn=role.role_arn,
            expiration=str(credentials.get("Expiration")),
        )
        return self._session_factory(
            aws_access_key_id=credentials["AccessKeyId"],
            aws_secret_access_key=credentials["SecretAccessKey"],
            aws_session_token=credentials["SessionToken"],
            region_name=region,
        )


def _config_error(message: str, attribute: str) -> ConfigurationError:
    error = ConfigurationError(message)
    error.with_context(attribute=attribute)
    return error
