"""Configuration for the Box Platform SDK.

Uses Pydantic v2 for validation with sensible defaults. Every model is
frozen, so a config can be shared by sessions, executors and event streams
without defensive copies.
"""

from __future__ import annotations

import math
import random
from typing import Annotated, Any, Callable, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
)

from .models import RetryOptions

RetryStrategy = Callable[[RetryOptions], float | None | Exception]

# Retry intervals fall between 50% and 150% of the exponential base amount
RETRY_RANDOMIZATION_FACTOR = 0.5

SUPPORTED_JWT_ALGORITHMS = frozenset({"RS256", "RS384", "RS512"})


class RetryConfig(BaseModel):
    """Retry configuration with exponential backoff."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    num_max_retries: Annotated[int, Field(ge=0, le=20)] = 5
    retry_interval_ms: Annotated[int, Field(gt=0, le=300_000)] = 2000
    retry_strategy: RetryStrategy | None = None

    def get_delay_ms(self, num_retry_attempts: int) -> int:
        """Calculate delay for the given retry attempt (1-indexed) with jitter."""
        low = 1 - RETRY_RANDOMIZATION_FACTOR
        high = 1 + RETRY_RANDOMIZATION_FACTOR
        randomization = random.uniform(low, high)  # noqa: S311
        exponential = 2 ** (num_retry_attempts - 1)
        return math.ceil(exponential * self.retry_interval_ms * randomization)


class AppAuthConfig(BaseModel):
    """Key material and claims settings for JWT-bearer grants."""

    model_config = ConfigDict(frozen=True)

    key_id: str = Field(..., min_length=1)
    private_key: SecretStr
    passphrase: SecretStr | None = None
    algorithm: str = "RS256"
    expiration_time: Annotated[int, Field(gt=0, le=60)] = 30
    verify_timestamp: bool = False

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, v: str) -> str:
        """Validate JWT signing algorithm is supported."""
        if v not in SUPPORTED_JWT_ALGORITHMS:
            msg = f"Unsupported app auth algorithm: {v}. Supported: {sorted(SUPPORTED_JWT_ALGORITHMS)}"
            raise ValueError(msg)
        return v


class EventsConfig(BaseModel):
    """Event stream polling configuration."""

    model_config = ConfigDict(frozen=True)

    retry_delay_ms: Annotated[int, Field(ge=0)] = 1000
    max_dedup_size: Annotated[int, Field(gt=0)] = 5000
    enterprise_polling_interval: Annotated[float, Field(ge=0)] = 60
    enterprise_chunk_size: Annotated[int, Field(gt=0, le=500)] = 500


class TelemetryConfig(BaseModel):
    """OpenTelemetry and logging configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    service_name: str = "box-platform-sdk"
    log_level: str = "INFO"


class AnalyticsClient(BaseModel):
    """Application identifiers appended to the analytics header."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str


class BoxConfig(BaseModel):
    """Main configuration for the Box Platform SDK."""

    model_config = ConfigDict(frozen=True, validate_default=True)

    # Required
    client_id: str = Field(..., min_length=1)
    client_secret: SecretStr

    # Endpoints
    api_root_url: str = "https://api.box.com"
    upload_api_root_url: str = "https://upload.box.com/api"
    authorize_root_url: str = "https://account.box.com/api"
    api_version: str = "2.0"

    # HTTP settings (seconds)
    timeout: Annotated[float, Field(gt=0, le=900)] = 60.0
    connect_timeout: Annotated[float, Field(gt=0, le=60)] = 10.0
    upload_timeout: Annotated[float, Field(gt=0, le=3600)] = 60.0

    # Token expiration buffers (milliseconds)
    expired_buffer_ms: Annotated[int, Field(ge=0)] = 180_000
    stale_buffer_ms: Annotated[int, Field(ge=0)] = 0

    # Client credentials subject
    box_subject_type: str | None = None
    box_subject_id: str | None = None
    enterprise_id: str | None = None

    # Sub-configurations
    retry: RetryConfig = Field(default_factory=RetryConfig)
    app_auth: AppAuthConfig | None = None
    events: EventsConfig = Field(default_factory=EventsConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    analytics_client: AnalyticsClient | None = None

    @field_validator("client_secret")
    @classmethod
    def validate_client_secret(cls, v: SecretStr) -> SecretStr:
        """Reject an empty client secret."""
        if not v.get_secret_value():
            msg = "client_secret must not be empty"
            raise ValueError(msg)
        return v

    @field_validator("api_root_url", "upload_api_root_url", "authorize_root_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def token_expiration_buffer_ms(self) -> int:
        """Buffer before expiry inside which a token is treated as expired."""
        return max(self.expired_buffer_ms, self.stale_buffer_ms)

    @property
    def api_base_url(self) -> str:
        return f"{self.api_root_url}/{self.api_version}"

    @property
    def upload_base_url(self) -> str:
        return f"{self.upload_api_root_url}/{self.api_version}"

    @property
    def token_url(self) -> str:
        return f"{self.api_root_url}/oauth2/token"

    @property
    def revoke_url(self) -> str:
        return f"{self.api_root_url}/oauth2/revoke"

    @property
    def authorize_url(self) -> str:
        return f"{self.authorize_root_url}/oauth2/authorize"

    def with_overrides(self, **kwargs: Any) -> Self:
        """Create new config with overridden values."""
        data = dict(self)
        data.update(kwargs)
        return self.__class__(**data)

    @classmethod
    def from_env(cls, prefix: str = "BOX_") -> Self:
        """Create config from environment variables."""
        import os

        def get_env(key: str, default: Any = None) -> Any:
            return os.environ.get(f"{prefix}{key}", default)

        client_id = get_env("CLIENT_ID")
        if not client_id:
            msg = f"{prefix}CLIENT_ID environment variable is required"
            raise ValueError(msg)

        client_secret = get_env("CLIENT_SECRET")
        if not client_secret:
            msg = f"{prefix}CLIENT_SECRET environment variable is required"
            raise ValueError(msg)

        overrides: dict[str, Any] = {}
        if api_root_url := get_env("API_ROOT_URL"):
            overrides["api_root_url"] = api_root_url
        if enterprise_id := get_env("ENTERPRISE_ID"):
            overrides["enterprise_id"] = enterprise_id

        return cls(
            client_id=client_id,
            client_secret=client_secret,
            retry=RetryConfig(
                num_max_retries=int(get_env("NUM_MAX_RETRIES", "5")),
                retry_interval_ms=int(get_env("RETRY_INTERVAL_MS", "2000")),
            ),
            **overrides,
        )
