"""Authorization URL builder for the Box Platform SDK.

Builds the URL a user is sent to in order to start the authorization code
flow.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

if TYPE_CHECKING:
    from ..config import BoxConfig


class AuthorizationBuilder:
    """Builds authorization code flow URLs for one app."""

    def __init__(self, config: BoxConfig) -> None:
        self.config = config

    def build_authorization_url(self, **params: Any) -> str:
        """Build authorization URL for the authorization code flow.

        Args:
            **params: Query parameters such as ``redirect_uri``, ``state`` or
                ``scope``. ``response_type`` defaults to ``code``; ``client_id``
                is always the configured one.

        Returns:
            The full authorize URL.
        """
        query: dict[str, Any] = {"response_type": "code"}
        query.update({k: v for k, v in params.items() if v is not None})
        query["client_id"] = self.config.client_id

        scope = query.get("scope")
        if isinstance(scope, list | tuple):
            query["scope"] = " ".join(scope)

        return f"{self.config.authorize_url}?{urlencode(query)}"
