"""Entry point of the Box Platform SDK.

``BoxSDK`` owns the resources shared by every client it creates: the httpx
connection pool, the request executor, the token manager and the anonymous
client credentials session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

from .client import BoxClient
from .core.http_executor import RequestExecutor
from .http import create_async_http_client
from .sessions import AppAuthSession, BasicSession, CCGSession, PersistentSession
from .telemetry import configure_telemetry, get_logger
from .token_manager import TokenManager

if TYPE_CHECKING:
    from .config import BoxConfig
    from .models import TokenInfo, TokenRequestOptions
    from .token_store import TokenStore


class BoxSDK:
    """Factory for Box API clients.

    Example:
        >>> async with BoxSDK(BoxConfig(client_id="id", client_secret="secret")) as sdk:
        ...     client = sdk.get_basic_client(access_token)
        ...     response = await client.get("/users/me")
    """

    def __init__(self, config: BoxConfig) -> None:
        """Initialize the SDK.

        Applies ``config.telemetry`` process-wide.

        Args:
            config: SDK configuration.
        """
        configure_telemetry(config.telemetry)
        self._http = create_async_http_client(config)
        self._logger = get_logger()
        self._build(config)

    def _build(self, config: BoxConfig) -> None:
        self.config = config
        self._executor = RequestExecutor(self._http, config.retry)
        self.token_manager = TokenManager(config, self._executor)
        self._anonymous_session = CCGSession(
            config,
            self.token_manager,
            subject_type=config.box_subject_type,
            subject_id=config.box_subject_id,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP connection pool shared by all clients."""
        await self._http.aclose()

    def configure(self, **overrides: Any) -> None:
        """Update the configuration for clients created from now on.

        Existing clients keep the configuration they were created with. The
        anonymous session is replaced, so its cached token is dropped. The
        connection pool and its timeouts are kept.

        Raises:
            pydantic.ValidationError: If an override is invalid.
        """
        config = self.config.with_overrides(**overrides)
        if "telemetry" in overrides:
            configure_telemetry(config.telemetry)
            self._logger = get_logger()
        self._build(config)
        self._logger.info("SDK reconfigured", overrides=sorted(overrides))

    def get_basic_client(self, access_token: str) -> BoxClient:
        """Create a client for a single access token that is never refreshed."""
        session = BasicSession(access_token, self.token_manager)
        return BoxClient(session, self.config, self._executor)

    def get_persistent_client(
        self,
        token_info: TokenInfo | dict[str, Any],
        token_store: TokenStore | None = None,
    ) -> BoxClient:
        """Create a client that refreshes its tokens as they expire.

        Args:
            token_info: Current tokens, including a refresh token.
            token_store: Optional store shared with other processes.

        Raises:
            ValueError: If token_info is malformed.
            TypeError: If token_store lacks read/write/clear.
        """
        session = PersistentSession(token_info, self.config, self.token_manager, token_store)
        return BoxClient(session, self.config, self._executor)

    def get_anonymous_client(self) -> BoxClient:
        """Create a client on the shared client credentials session."""
        return BoxClient(self._anonymous_session, self.config, self._executor)

    def get_app_auth_client(
        self,
        subject_type: str,
        subject_id: str | None = None,
        token_store: TokenStore | None = None,
    ) -> BoxClient:
        """Create a client authenticated as an enterprise or app user.

        Args:
            subject_type: "enterprise" or "user".
            subject_id: ID of the subject; defaults to the configured
                enterprise for "enterprise".
            token_store: Optional store shared with other processes.

        Raises:
            ValueError: If no enterprise ID is given or configured.
        """
        if subject_type == "enterprise" and not subject_id:
            if not self.config.enterprise_id:
                msg = "Enterprise ID must be passed"
                raise ValueError(msg)
            subject_id = self.config.enterprise_id

        session = AppAuthSession(
            subject_type,
            subject_id or "",
            self.config,
            self.token_manager,
            token_store,
        )
        return BoxClient(session, self.config, self._executor)

    def get_authorize_url(self, **params: Any) -> str:
        """Build the URL to send users to for authorization."""
        return self.token_manager.get_authorize_url(**params)

    async def get_tokens_authorization_code_grant(
        self,
        code: str,
        options: TokenRequestOptions | None = None,
    ) -> TokenInfo:
        return await self.token_manager.get_tokens_authorization_code_grant(code, options)

    async def get_tokens_refresh_grant(
        self,
        refresh_token: str,
        options: TokenRequestOptions | None = None,
    ) -> TokenInfo:
        return await self.token_manager.get_tokens_refresh_grant(refresh_token, options)

    async def get_enterprise_app_auth_tokens(
        self,
        enterprise_id: str | None = None,
        options: TokenRequestOptions | None = None,
    ) -> TokenInfo:
        """Get enterprise tokens with a JWT grant.

        Raises:
            ValueError: If no enterprise ID is given or configured.
        """
        enterprise_id = enterprise_id or self.config.enterprise_id
        if not enterprise_id:
            msg = "Enterprise ID must be passed"
            raise ValueError(msg)
        return await self.token_manager.get_tokens_jwt_grant("enterprise", enterprise_id, options)

    async def get_app_user_tokens(
        self,
        user_id: str,
        options: TokenRequestOptions | None = None,
    ) -> TokenInfo:
        """Get tokens for an app user with a JWT grant."""
        return await self.token_manager.get_tokens_jwt_grant("user", user_id, options)

    async def revoke_tokens(
        self,
        token: str,
        options: TokenRequestOptions | None = None,
    ) -> None:
        """Revoke an access or refresh token along with its pair."""
        await self.token_manager.revoke_tokens(token, options)
