"""Session around a single caller-supplied access token."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..errors import BoxSDKError
    from ..models import ActorParams, SharedLinkParams, TokenInfo, TokenRequestOptions
    from ..token_manager import TokenManager


class BasicSession:
    """Holds one access token and never refreshes it.

    Expiry cannot be detected; once the token stops working every call
    fails with an auth-expired error.
    """

    def __init__(self, access_token: str, token_manager: TokenManager) -> None:
        if not isinstance(access_token, str) or not access_token:
            msg = "access_token must be a non-empty string"
            raise ValueError(msg)
        self._access_token = access_token
        self._token_manager = token_manager

    async def get_access_token(self, options: TokenRequestOptions | None = None) -> str:
        return self._access_token

    async def revoke_tokens(self, options: TokenRequestOptions | None = None) -> None:
        await self._token_manager.revoke_tokens(self._access_token, options)

    async def exchange_token(
        self,
        scopes: str | list[str],
        resource: str | None = None,
        *,
        options: TokenRequestOptions | None = None,
        actor: ActorParams | None = None,
        shared_link: SharedLinkParams | None = None,
    ) -> TokenInfo:
        """Exchange the held token for a downscoped one."""
        return await self._token_manager.exchange_token(
            self._access_token,
            scopes,
            resource,
            options=options,
            actor=actor,
            shared_link=shared_link,
        )

    async def handle_expired_tokens_error(self, error: BoxSDKError) -> None:
        return None
