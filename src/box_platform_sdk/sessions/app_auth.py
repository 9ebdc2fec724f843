"""App auth session: JWT bearer tokens for an enterprise or app user."""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING

from ..core.single_flight import SingleFlight
from ..errors import ResponseError
from ..telemetry import get_logger
from ..token_store import validate_token_store
from .base import coerce_token_info

if TYPE_CHECKING:
    from ..config import BoxConfig
    from ..errors import BoxSDKError
    from ..models import ActorParams, SharedLinkParams, TokenInfo, TokenRequestOptions
    from ..token_manager import TokenManager
    from ..token_store import TokenStore

SUBJECT_TYPES = frozenset({"enterprise", "user"})


class AppAuthSession:
    """Keeps a JWT-granted token for one subject fresh.

    An expired token holds callers until a new one is granted. A token
    inside the stale buffer is still returned while a refresh runs in the
    background.
    """

    def __init__(
        self,
        subject_type: str,
        subject_id: str,
        config: BoxConfig,
        token_manager: TokenManager,
        token_store: TokenStore | None = None,
    ) -> None:
        """Initialize the session.

        Raises:
            ValueError: If the subject type is not "enterprise" or "user".
            TypeError: If token_store lacks read/write/clear.
        """
        if subject_type not in SUBJECT_TYPES:
            msg = f"subject_type must be one of {sorted(SUBJECT_TYPES)}, got {subject_type!r}"
            raise ValueError(msg)
        if not subject_id:
            msg = "subject_id must be non-empty"
            raise ValueError(msg)

        self.subject_type = subject_type
        self.subject_id = subject_id
        self._config = config
        self._token_manager = token_manager
        self._token_store = (
            validate_token_store(token_store) if token_store is not None else None
        )
        self._token_info: TokenInfo | None = None
        self._refresh = SingleFlight[str]("app_auth_refresh")
        self._logger = get_logger()

    @property
    def token_info(self) -> TokenInfo | None:
        return self._token_info

    async def _refresh_access_token(self, options: TokenRequestOptions | None) -> str:
        try:
            token_info = await self._token_manager.get_tokens_jwt_grant(
                self.subject_type, self.subject_id, options
            )
        except ResponseError as e:
            if e.status_code != HTTPStatus.BAD_REQUEST or self._token_store is None:
                raise
            token_info = await self._reconcile_with_store(e)
        else:
            if self._token_store is not None:
                await self._token_store.write(token_info)

        self._token_info = token_info
        return token_info.access_token

    async def _reconcile_with_store(self, error: ResponseError) -> TokenInfo:
        """Fall back to a still valid token another process stored.

        Raises:
            ResponseError: The grant error, once the store has been cleared.
        """
        stored = await self._token_store.read()
        if stored is not None:
            stored = coerce_token_info(stored)
            current = self._token_info.access_token if self._token_info else None
            if stored.access_token != current and self._token_manager.is_access_token_valid(
                stored, self._config.expired_buffer_ms
            ):
                self._logger.info(
                    "Adopted app auth token from store",
                    subject_type=self.subject_type,
                )
                return stored

        await self._token_store.clear()
        raise error

    async def get_access_token(self, options: TokenRequestOptions | None = None) -> str:
        """Return a usable access token for the subject."""
        if not self._token_manager.is_access_token_valid(
            self._token_info, self._config.expired_buffer_ms
        ):
            return await self._refresh.run(lambda: self._refresh_access_token(options))

        if not self._token_manager.is_access_token_valid(
            self._token_info, self._config.stale_buffer_ms
        ):
            self._logger.debug("Refreshing stale app auth token in background")
            self._refresh.start(lambda: self._refresh_access_token(options))

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
        """Drop the rejected token and any stored copy of it."""
        self._token_info = None
        if self._token_store is not None:
            await self._token_store.clear()
