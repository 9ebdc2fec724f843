"""Client credentials session for an identity not bound to a user login."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..core.single_flight import SingleFlight
from ..telemetry import get_logger

if TYPE_CHECKING:
    from ..config import BoxConfig
    from ..errors import BoxSDKError
    from ..models import ActorParams, SharedLinkParams, TokenInfo, TokenRequestOptions
    from ..token_manager import TokenManager


class CCGSession:
    """Keeps a client credentials token fresh.

    One instance is shared by every anonymous client of an SDK, so
    concurrent callers share a single refresh.
    """

    def __init__(
        self,
        config: BoxConfig,
        token_manager: TokenManager,
        *,
        subject_type: str | None = None,
        subject_id: str | None = None,
    ) -> None:
        self._config = config
        self._token_manager = token_manager
        self._subject_type = subject_type
        self._subject_id = subject_id
        self._token_info: TokenInfo | None = None
        self._refresh = SingleFlight[str]("ccg_refresh")
        self._logger = get_logger()

    @property
    def token_info(self) -> TokenInfo | None:
        return self._token_info

    async def _refresh_access_token(self, options: TokenRequestOptions | None) -> str:
        token_info = await self._token_manager.get_tokens_client_credentials_grant(
            self._subject_type, self._subject_id, options
        )
        self._token_info = token_info
        return token_info.access_token

    async def get_access_token(self, options: TokenRequestOptions | None = None) -> str:
        """Return the cached token, refreshing it first if it is no longer fresh."""
        if not self._token_manager.is_access_token_valid(
            self._token_info, self._config.token_expiration_buffer_ms
        ):
            return await self._refresh.run(lambda: self._refresh_access_token(options))

        return self._token_info.access_token

    async def revoke_tokens(self, options: TokenRequestOptions | None = None) -> None:
        """Revoke the current token; a new one is granted on the next call."""
        token_info, self._token_info = self._token_info, None
        if token_info is None:
            return
        await self._token_manager.revoke_tokens(token_info.access_token, options)

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
        """Drop the rejected token so the next call grants a new one."""
        self._logger.info("Discarding rejected client credentials token")
        self._token_info = None
