"""Token grants against the Box OAuth2 endpoints.

The token manager is stateless per call: each grant turns its parameters into
a token endpoint request and the response into a TokenInfo. Sessions own the
resulting tokens.
"""

from __future__ import annotations

import asyncio
import time
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any

from .core.auth_builder import AuthorizationBuilder
from .core.http_executor import next_retry_delay_ms
from .core.token_ops import TokenOperations
from .errors import BoxSDKError, NetworkError, ResponseError, RetriesExhaustedError
from .http import HEADER_XFF
from .models import TokenInfo, now_ms
from .telemetry import get_logger, traced_async

if TYPE_CHECKING:
    from .config import BoxConfig
    from .core.http_executor import RequestExecutor
    from .models import ActorParams, SharedLinkParams, TokenRequestOptions


def is_jwt_grant_error_retryable(error: BoxSDKError) -> bool:
    """Check if a failed JWT grant is worth re-signing and sending again.

    The server rejects assertions whose ``exp`` or ``jti`` claim it doesn't
    accept, usually from clock skew; those carry a Date header to sync to.
    """
    if error.auth_expired and isinstance(error, ResponseError):
        description = str(error.details.get("error_description", ""))
        if error.response.headers.get("date") and (
            "exp" in description or "jti" in description
        ):
            return True

    if isinstance(error, NetworkError):
        return True

    return error.status_code is not None and (
        error.status_code == 429 or error.status_code >= 500
    )


def _server_time(error: BoxSDKError) -> float:
    """Server clock from the Date header of an error response, else local time."""
    if isinstance(error, ResponseError):
        date = error.response.headers.get("date")
        if date:
            try:
                return parsedate_to_datetime(date).timestamp()
            except (TypeError, ValueError):
                pass
    return time.time()


class TokenManager:
    """Performs token grants and revocation."""

    def __init__(self, config: BoxConfig, executor: RequestExecutor) -> None:
        """Initialize the token manager.

        Args:
            config: SDK configuration.
            executor: Executor used for token endpoint requests.
        """
        self.config = config
        self._executor = executor
        self._ops = TokenOperations(config)
        self._logger = get_logger()

    @staticmethod
    def is_access_token_valid(token_info: TokenInfo | None, buffer_ms: float = 0) -> bool:
        """Check if an access token is usable outside of a buffer.

        Args:
            token_info: Token to check.
            buffer_ms: The greater the buffer, the earlier a token counts as
                expired.

        Returns:
            True iff now < acquired_at_ms + access_token_ttl_ms - buffer_ms.
        """
        if token_info is None:
            return False
        return now_ms() < token_info.expires_at_ms - buffer_ms

    async def _get_tokens(
        self,
        form: dict[str, Any],
        options: TokenRequestOptions | None = None,
        *,
        num_max_retries: int | None = None,
    ) -> TokenInfo:
        response = await self._executor.execute(
            "POST",
            self.config.token_url,
            data=form,
            headers=_request_headers(options),
            num_max_retries=num_max_retries,
        )
        token_info = self._ops.parse_token_response(form["grant_type"], response)
        self._logger.debug(
            "Token granted",
            grant_type=form["grant_type"],
            ttl_ms=token_info.access_token_ttl_ms,
        )
        return token_info

    @traced_async("token_grant.authorization_code")
    async def get_tokens_authorization_code_grant(
        self,
        code: str,
        options: TokenRequestOptions | None = None,
    ) -> TokenInfo:
        """Acquire tokens using an authorization code issued by Box.

        Raises:
            ValueError: If the code is empty.
            AuthExpiredError: If the code was already used or has expired.
        """
        return await self._get_tokens(
            self._ops.build_authorization_code_request(code), options
        )

    @traced_async("token_grant.refresh_token")
    async def get_tokens_refresh_grant(
        self,
        refresh_token: str,
        options: TokenRequestOptions | None = None,
    ) -> TokenInfo:
        """Exchange a refresh token for a new token pair.

        Raises:
            ValueError: If the refresh token is empty.
            AuthExpiredError: If the refresh token is no longer valid.
        """
        return await self._get_tokens(
            self._ops.build_refresh_token_request(refresh_token), options
        )

    @traced_async("token_grant.client_credentials")
    async def get_tokens_client_credentials_grant(
        self,
        subject_type: str | None = None,
        subject_id: str | None = None,
        options: TokenRequestOptions | None = None,
    ) -> TokenInfo:
        """Acquire tokens for a subject with the client credentials grant.

        The subject defaults to the configured one.
        """
        return await self._get_tokens(
            self._ops.build_client_credentials_request(subject_type, subject_id),
            options,
        )

    @traced_async("token_grant.jwt")
    async def get_tokens_jwt_grant(
        self,
        subject_type: str,
        subject_id: str,
        options: TokenRequestOptions | None = None,
    ) -> TokenInfo:
        """Acquire tokens for an enterprise or user with a signed JWT assertion.

        Assertions rejected for clock skew, rate limiting or server errors are
        re-signed with a fresh ``jti`` and sent again, up to the configured
        number of retries.

        Args:
            subject_type: "enterprise" or "user".
            subject_id: ID of the enterprise or user.
            options: Optional request behavior.

        Raises:
            InvalidConfigError: If no app auth configuration is set.
            RetriesExhaustedError: If every retry failed.
        """
        retry_config = self.config.retry
        claims = self._ops.build_jwt_claims(subject_type, subject_id)
        started = time.monotonic()
        num_retries = 0

        while True:
            form = self._ops.build_jwt_request(self._ops.sign_assertion(claims))
            try:
                # Retries happen here so each attempt gets a fresh assertion
                return await self._get_tokens(form, options, num_max_retries=0)
            except BoxSDKError as e:
                error = e

            if not is_jwt_grant_error_retryable(error):
                raise error

            delay_ms = next_retry_delay_ms(
                retry_config,
                error,
                num_retry_attempts=num_retries + 1,
                num_max_retries=retry_config.num_max_retries,
                strategy=retry_config.retry_strategy,
                elapsed_ms=(time.monotonic() - started) * 1000,
            )
            if delay_ms is None:
                if num_retries == 0:
                    raise error
                raise RetriesExhaustedError(error, num_retry_attempts=num_retries)

            num_retries += 1
            claims = self._ops.build_jwt_claims(
                subject_type,
                subject_id,
                now=_server_time(error),
                extra_seconds=delay_ms / 1000,
            )
            self._logger.warning(
                "JWT grant failed, retrying with new assertion",
                attempt=num_retries,
                delay_ms=delay_ms,
                error=error.code,
                status_code=error.status_code,
            )
            await asyncio.sleep(delay_ms / 1000)

    @traced_async("token_grant.token_exchange")
    async def exchange_token(
        self,
        access_token: str,
        scopes: str | list[str],
        resource: str | None = None,
        *,
        options: TokenRequestOptions | None = None,
        actor: ActorParams | None = None,
        shared_link: SharedLinkParams | None = None,
    ) -> TokenInfo:
        """Exchange a valid access token for a downscoped one.

        Args:
            access_token: The token to exchange.
            scopes: Scope or scopes of the new token.
            resource: Optional API resource URL to restrict the new token to.
            options: Optional request behavior.
            actor: Optional external actor, for annotator tokens.
            shared_link: Optional shared link the new token is scoped to.

        Returns:
            The downscoped token info (no refresh token).
        """
        return await self._get_tokens(
            self._ops.build_token_exchange_request(
                access_token,
                scopes,
                resource,
                actor=actor,
                shared_link=shared_link,
            ),
            options,
        )

    @traced_async("token_revoke")
    async def revoke_tokens(
        self,
        token: str,
        options: TokenRequestOptions | None = None,
    ) -> None:
        """Revoke the token pair associated with an access or refresh token."""
        await self._executor.execute(
            "POST",
            self.config.revoke_url,
            data=self._ops.build_revoke_request(token),
            headers=_request_headers(options),
        )
        self._logger.info("Tokens revoked")

    def get_authorize_url(self, **params: Any) -> str:
        """Build the URL that starts the authorization code flow."""
        return AuthorizationBuilder(self.config).build_authorization_url(**params)


def _request_headers(options: TokenRequestOptions | None) -> dict[str, str] | None:
    if options is not None and options.ip:
        return {HEADER_XFF: options.ip}
    return None


