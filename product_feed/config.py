"""
Feed configuration.
Validated once at setup so that a bad run fails before any item is pulled.
"""

import codecs
import json
import os
from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic import ValidationError as PydanticValidationError
from pydantic import ValidationInfo, field_validator

from product_feed.exceptions import ConfigurationError
from product_feed.models import ScalarValue
from product_feed.sinks import parse_destination

DEFAULT_DESTINATION = "stdout://"


class ErrorPolicy(str, Enum):
    """What happens when an item fails validation or a pipeline stage."""
    ABORT = "abort"
    SKIP = "skip"


class CleanupPolicy(str, Enum):
    """What happens to partially written output when a run aborts."""
    KEEP = "keep"
    DELETE = "delete"


class FeedConfig(BaseModel):
    """
    Run configuration: destination descriptor, platform metadata,
    feed-level attributes and failure handling.
    """
    model_config = ConfigDict(frozen=True)

    destination: str = DEFAULT_DESTINATION
    platform_name: Optional[str] = None
    platform_version: Optional[str] = None
    attributes: dict[StrictStr, ScalarValue] = Field(default_factory=dict)
    error_policy: ErrorPolicy = ErrorPolicy.ABORT
    cleanup_policy: CleanupPolicy = CleanupPolicy.KEEP
    encoding: str = "utf-8"
    aws_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = None

    @field_validator("destination")
    @classmethod
    def _check_destination(cls, value: str) -> str:
        parse_destination(value)
        return value

    @field_validator("platform_name", "platform_version")
    @classmethod
    def _check_platform(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("attributes")
    @classmethod
    def _check_attribute_keys(cls, value: dict) -> dict:
        for key in value:
            if not key.strip():
                raise ValueError("attribute keys must not be blank")
        return value

    @field_validator("encoding")
    @classmethod
    def _check_encoding(cls, value: str) -> str:
        try:
            codecs.lookup(value)
        except LookupError:
            raise ValueError(f"unknown encoding {value!r}")
        return value

    @field_validator("platform_version")
    @classmethod
    def _check_platform_pair(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if value is not None and info.data.get("platform_name") is None:
            raise ValueError("platform_version requires platform_name")
        return value

    @classmethod
    def build(cls, **values) -> "FeedConfig":
        """Validate values, raising ConfigurationError instead of pydantic errors."""
        try:
            return cls(**values)
        except PydanticValidationError as e:
            raise _configuration_error(e) from e

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> "FeedConfig":
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from, os.environ when omitted
            overrides: Values that take precedence over the environment

        Returns:
            Validated FeedConfig
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        mapping = {
            "FEED_DESTINATION": "destination",
            "FEED_PLATFORM_NAME": "platform_name",
            "FEED_PLATFORM_VERSION": "platform_version",
            "FEED_ERROR_POLICY": "error_policy",
            "FEED_CLEANUP_POLICY": "cleanup_policy",
            "FEED_ENCODING": "encoding",
            "AWS_REGION": "aws_region",
            "LOCALSTACK_ENDPOINT": "s3_endpoint_url",
        }
        for env_key, field_name in mapping.items():
            if env.get(env_key):
                values[field_name] = env[env_key]

        raw_attributes = env.get("FEED_ATTRIBUTES")
        if raw_attributes:
            try:
                values["attributes"] = json.loads(raw_attributes)
            except json.JSONDecodeError as e:
                raise ConfigurationError(
                    message=f"FEED_ATTRIBUTES is not valid JSON: {e}",
                    config_key="FEED_ATTRIBUTES",
                    original_exception=e,
                )

        values.update(overrides)
        return cls.build(**values)


def _configuration_error(error: PydanticValidationError) -> ConfigurationError:
    first = error.errors()[0]
    config_key = ".".join(str(part) for part in first["loc"]) or "config"
    return ConfigurationError(
        message=f"Invalid feed configuration for {config_key}: {first['msg']}",
        config_key=config_key,
        original_exception=error,
    )
