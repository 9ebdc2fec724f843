"""HTTP client utilities for the Box Platform SDK."""

from __future__ import annotations

import platform
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from .config import AnalyticsClient, BoxConfig

SDK_VERSION = "0.1.0"

HEADER_AUTHORIZATION = "Authorization"
HEADER_XFF = "X-Forwarded-For"
HEADER_BOX_UA = "X-Box-UA"
HEADER_AS_USER = "As-User"
HEADER_BOXAPI = "BoxApi"


def user_agent() -> str:
    return f"Box Python SDK v{SDK_VERSION} (Python {platform.python_version()})"


def analytics_header(client: AnalyticsClient | None = None) -> str:
    """Build the X-Box-UA header value sent with every API call."""
    identifiers = {
        "agent": f"box-platform-sdk/{SDK_VERSION}",
        "env": f"Python/{platform.python_version()}",
    }
    if client is not None:
        identifiers["client"] = f"{client.name}/{client.version}"

    return "; ".join(f"{k}={v}" for k, v in identifiers.items())


def create_async_http_client(config: BoxConfig) -> httpx.AsyncClient:
    """Create configured async HTTP client.

    Args:
        config: SDK configuration.

    Returns:
        Configured httpx.AsyncClient.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=config.connect_timeout,
            read=config.timeout,
            write=config.timeout,
            pool=config.timeout,
        ),
        headers={
            "User-Agent": user_agent(),
        },
        follow_redirects=False,
    )
