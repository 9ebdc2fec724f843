"""Session for a user's OAuth2 token pair, optionally shared through a store."""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING, Any

from ..core.single_flight import SingleFlight
from ..errors import AuthExpiredError, ResponseError
from ..telemetry import get_logger
from ..token_store import validate_token_store
from .base import coerce_token_info

if TYPE_CHECKING:
    from ..config import BoxConfig
    from ..errors import BoxSDKError
    from ..models import ActorParams, SharedLinkParams, TokenInfo, TokenRequestOptions
    from ..token_manager import TokenManager
    from ..token_store import TokenStore


class PersistentSession:
    """Refreshes a user's token pair and keeps the token store in sync.

    Several processes may share one store. When a refresh is rejected
    because another process already used the refresh token, the newer
    tokens that process wrote to the store are adopted instead.

    States: valid, stale (refreshing), expired but recoverable through the
    store, expired for good.
    """

    def __init__(
        self,
        token_info: TokenInfo | dict[str, Any],
        config: BoxConfig,
        token_manager: TokenManager,
        token_store: TokenStore | None = None,
    ) -> None:
        """Initialize the session.

        Raises:
            ValueError: If token_info is malformed or lacks a refresh token.
            TypeError: If token_store lacks read/write/clear.
        """
        self._config = config
        self._token_manager = token_manager
        self._token_info = coerce_token_info(token_info, require_refresh_token=True)
        self._token_store = (
            validate_token_store(token_store) if token_store is not None else None
        )
        self._refresh = SingleFlight[str]("persistent_refresh")
        self._logger = get_logger()

    @property
    def token_info(self) -> TokenInfo:
        return self._token_info

    async def _refresh_tokens(self, options: TokenRequestOptions | None) -> str:
        try:
            try:
                token_info = await self._token_manager.get_tokens_refresh_grant(
                    self._token_info.refresh_token, options
                )
            except ResponseError as e:
                if e.status_code != HTTPStatus.BAD_REQUEST or self._token_store is None:
                    raise
                token_info = await self._reconcile_with_store(e)

            if self._token_store is not None:
                await self._token_store.write(token_info)

            self._token_info = token_info
            return token_info.access_token
        except AuthExpiredError as e:
            await self.handle_expired_tokens_error(e)
            raise

    async def _reconcile_with_store(self, error: ResponseError) -> TokenInfo:
        """Recover from a rejected refresh using tokens another process stored.

        Raises:
            AuthExpiredError: If the store has nothing newer than what failed.
        """
        stored = await self._token_store.read()
        if stored is not None:
            stored = coerce_token_info(stored, require_refresh_token=True)

        if stored is None or stored.refresh_token == self._token_info.refresh_token:
            if isinstance(error, AuthExpiredError):
                raise error
            raise AuthExpiredError(error.response) from error

        self._logger.info("Adopted tokens refreshed by another session")
        return stored

    async def get_access_token(self, options: TokenRequestOptions | None = None) -> str:
        """Return a fresh access token, refreshing the pair if needed."""
        if not self._token_manager.is_access_token_valid(
            self._token_info, self._config.token_expiration_buffer_ms
        ):
            return await self._refresh.run(lambda: self._refresh_tokens(options))

        return self._token_info.access_token

    async def revoke_tokens(self, options: TokenRequestOptions | None = None) -> None:
        """Revoke the token pair through its refresh token.

        The cached access token is marked expired, so the next call attempts
        a grant rather than sending the revoked token.
        """
        await self._token_manager.revoke_tokens(self._token_info.refresh_token, options)
        self._token_info = self._token_info.model_copy(update={"access_token_ttl_ms": 0})

    async def exchange_token(
        self,
        scopes: str | list[str],
        resource: str | None = None,
        *,
        options: TokenRequestOptions | None = None,
        actor: ActorParams | None = None,
        shared_link: SharedLinkParams | None = None,
    ) -> TokenInfo:
        access_token = await self.get_access_token(options)
        return await self._token_manager.exchange_token(
            access_token,
            scopes,
            resource,
            options=options,
            actor=actor,
            shared_link=shared_link,
        )

    async def handle_expired_tokens_error(self, error: BoxSDKError) -> None:
        """Clear the token store; the tokens in it can no longer be used."""
        if self._token_store is None:
            return
        self._logger.info("Clearing token store after expired tokens")
        await self._token_store.clear()
