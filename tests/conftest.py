"""
Shared test fixtures for Box Platform SDK tests.

Provides common fixtures for HTTP mocking, configuration,
and test data generation.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from box_platform_sdk.config import (
    AppAuthConfig,
    BoxConfig,
    EventsConfig,
    RetryConfig,
    TelemetryConfig,
)
from box_platform_sdk.core.http_executor import RequestExecutor
from box_platform_sdk.models import TokenInfo, now_ms
from box_platform_sdk.token_manager import TokenManager

API_URL = "https://api.box.com/2.0"
TOKEN_URL = "https://api.box.com/oauth2/token"
REVOKE_URL = "https://api.box.com/oauth2/revoke"


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    """Provide an RSA private key for signing JWT assertions."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def retry_config() -> RetryConfig:
    """Provide retry configuration with short delays."""
    return RetryConfig(num_max_retries=3, retry_interval_ms=10)


@pytest.fixture
def base_config(retry_config: RetryConfig) -> BoxConfig:
    """Provide a basic SDK configuration for testing."""
    return BoxConfig(
        client_id="test-client-id",
        client_secret="test-client-secret",
        retry=retry_config,
        events=EventsConfig(retry_delay_ms=10, enterprise_polling_interval=0.01),
        telemetry=TelemetryConfig(enabled=False),
    )


@pytest.fixture
def app_auth_config(base_config: BoxConfig, private_key_pem: str) -> BoxConfig:
    """Provide SDK configuration with JWT app auth."""
    return base_config.with_overrides(
        enterprise_id="enterprise-1",
        app_auth=AppAuthConfig(key_id="key-1", private_key=private_key_pem),
    )


@pytest.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def executor(http_client: httpx.AsyncClient, retry_config: RetryConfig) -> RequestExecutor:
    return RequestExecutor(http_client, retry_config)


@pytest.fixture
def token_manager(base_config: BoxConfig, executor: RequestExecutor) -> TokenManager:
    return TokenManager(base_config, executor)


@pytest.fixture
def make_token_info() -> Callable[..., TokenInfo]:
    """Provide a factory for token info that expires ``ttl_ms`` from now."""

    def factory(
        access_token: str = "access-token",
        refresh_token: str | None = "refresh-token",
        ttl_ms: int = 3_600_000,
    ) -> TokenInfo:
        return TokenInfo(
            access_token=access_token,
            refresh_token=refresh_token,
            acquired_at_ms=int(now_ms()),
            access_token_ttl_ms=ttl_ms,
        )

    return factory


@pytest.fixture
def sample_token_response() -> dict[str, Any]:
    """Provide a sample token endpoint response."""
    return {
        "access_token": "new-access-token",
        "refresh_token": "new-refresh-token",
        "expires_in": 3600,
        "token_type": "bearer",
        "restricted_to": [],
    }
