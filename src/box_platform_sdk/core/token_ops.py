"""Centralized token operations for the Box Platform SDK.

Builds token endpoint form payloads, signs JWT assertions and validates grant
responses. Nothing here performs I/O; the token manager sends the requests.
"""

from __future__ import annotations

import math
import time
import uuid
from typing import TYPE_CHECKING, Any

import jwt
from cryptography.hazmat.primitives import serialization

from ..errors import InvalidConfigError, ResponseError, UnexpectedResponseError
from ..models import TokenInfo

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

    from ..config import AppAuthConfig, BoxConfig
    from ..models import ActorParams, APIResponse, SharedLinkParams


class GrantType:
    """OAuth2 grant types accepted by the token endpoint."""

    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"
    JWT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
    TOKEN_EXCHANGE = "urn:ietf:params:oauth:grant-type:token-exchange"


ACCESS_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:access_token"
ACTOR_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id_token"
BOX_JWT_AUDIENCE = "https://api.box.com/oauth2/token"

# Actor tokens are unsigned and only need to outlive the exchange call
ACTOR_TOKEN_LIFETIME_SECONDS = 60


def is_valid_code_or_token(value: Any) -> bool:
    """Check that a value could be an authorization code or token."""
    return isinstance(value, str) and len(value) > 0


class TokenOperations:
    """Token endpoint request building shared by every grant.

    Holds the config and the loaded signing key; has no token state of its own.
    """

    def __init__(self, config: BoxConfig) -> None:
        """Initialize token operations.

        Args:
            config: SDK configuration.
        """
        self.config = config
        self._signing_key: PrivateKeyTypes | None = None

    def with_credentials(self, form: dict[str, Any]) -> dict[str, Any]:
        """Add the app credentials to a token endpoint form."""
        return {
            **form,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret.get_secret_value(),
        }

    def build_authorization_code_request(self, code: str) -> dict[str, Any]:
        """Build authorization code exchange request payload.

        Raises:
            ValueError: If the code is empty.
        """
        if not is_valid_code_or_token(code):
            msg = "Invalid authorization code."
            raise ValueError(msg)

        return self.with_credentials(
            {"grant_type": GrantType.AUTHORIZATION_CODE, "code": code}
        )

    def build_refresh_token_request(self, refresh_token: str) -> dict[str, Any]:
        """Build refresh token grant request payload.

        Raises:
            ValueError: If the refresh token is empty.
        """
        if not is_valid_code_or_token(refresh_token):
            msg = "Invalid refresh token."
            raise ValueError(msg)

        return self.with_credentials(
            {"grant_type": GrantType.REFRESH_TOKEN, "refresh_token": refresh_token}
        )

    def build_client_credentials_request(
        self,
        subject_type: str | None = None,
        subject_id: str | None = None,
    ) -> dict[str, Any]:
        """Build client credentials grant request payload.

        Falls back to the configured ``box_subject_type``/``box_subject_id``.
        """
        data: dict[str, Any] = {"grant_type": GrantType.CLIENT_CREDENTIALS}

        subject_type = subject_type or self.config.box_subject_type
        subject_id = subject_id or self.config.box_subject_id
        if subject_type:
            data["box_subject_type"] = subject_type
        if subject_id:
            data["box_subject_id"] = subject_id

        return self.with_credentials(data)

    def build_jwt_claims(
        self,
        subject_type: str,
        subject_id: str,
        *,
        now: float | None = None,
        extra_seconds: float = 0,
    ) -> dict[str, Any]:
        """Build the claims of a JWT bearer assertion.

        Args:
            subject_type: "enterprise" or "user".
            subject_id: ID of the subject the token is for.
            now: Reference time in seconds (server time on retries).
            extra_seconds: Added to the expiration, e.g. the retry delay.

        Returns:
            Claims dictionary with a fresh ``jti``.
        """
        app_auth = self._require_app_auth()
        issued_at = time.time() if now is None else now

        claims: dict[str, Any] = {
            "iss": self.config.client_id,
            "sub": subject_id,
            "aud": BOX_JWT_AUDIENCE,
            "box_sub_type": subject_type,
            "jti": str(uuid.uuid4()),
            "exp": math.ceil(issued_at + app_auth.expiration_time + extra_seconds),
        }
        if app_auth.verify_timestamp:
            claims["iat"] = int(issued_at)

        return claims

    def sign_assertion(self, claims: dict[str, Any]) -> str:
        """Sign JWT bearer assertion claims with the configured key."""
        app_auth = self._require_app_auth()
        return jwt.encode(
            claims,
            self._load_signing_key(app_auth),
            algorithm=app_auth.algorithm,
            headers={"kid": app_auth.key_id},
        )

    def build_jwt_request(self, assertion: str) -> dict[str, Any]:
        """Build JWT bearer grant request payload."""
        return self.with_credentials(
            {"grant_type": GrantType.JWT, "assertion": assertion}
        )

    def build_token_exchange_request(
        self,
        access_token: str,
        scopes: str | list[str],
        resource: str | None = None,
        *,
        actor: ActorParams | None = None,
        shared_link: SharedLinkParams | None = None,
    ) -> dict[str, Any]:
        """Build token exchange request payload.

        Args:
            access_token: Token being downscoped.
            scopes: Scope or scopes of the new token.
            resource: Optional API resource URL to restrict the token to.
            actor: Optional external actor for annotator tokens.
            shared_link: Optional shared link to scope the token to.

        Returns:
            Request payload dictionary.
        """
        data: dict[str, Any] = {
            "grant_type": GrantType.TOKEN_EXCHANGE,
            "subject_token_type": ACCESS_TOKEN_TYPE,
            "subject_token": access_token,
            "scope": scopes if isinstance(scopes, str) else " ".join(scopes),
        }

        if resource:
            data["resource"] = resource

        if shared_link is not None:
            data["box_shared_link"] = shared_link.url

        if actor is not None:
            data["actor_token"] = self.build_actor_token(actor)
            data["actor_token_type"] = ACTOR_TOKEN_TYPE

        return self.with_credentials(data)

    def build_actor_token(self, actor: ActorParams) -> str:
        """Build the unsigned JWT identifying an external actor."""
        payload = {
            "iss": self.config.client_id,
            "sub": actor.id,
            "aud": BOX_JWT_AUDIENCE,
            "box_sub_type": "external",
            "name": actor.name,
            "jti": str(uuid.uuid4()),
            "exp": int(time.time()) + ACTOR_TOKEN_LIFETIME_SECONDS,
        }
        return jwt.encode(payload, None, algorithm="none")

    def build_revoke_request(self, token: str) -> dict[str, Any]:
        """Build token revocation request payload."""
        return self.with_credentials({"token": token})

    def parse_token_response(self, grant_type: str, response: APIResponse) -> TokenInfo:
        """Validate a grant response and convert it to TokenInfo.

        Args:
            grant_type: Grant type the request was made with.
            response: Response from the token endpoint.

        Returns:
            Token info acquired now.

        Raises:
            UnexpectedResponseError: If the status is not 200 or the body is not JSON.
            ResponseError: If the body lacks the fields the grant must return.
        """
        if response.status_code != 200 or not isinstance(response.body, dict):
            raise UnexpectedResponseError(response)

        if not is_valid_token_response(grant_type, response.body):
            raise ResponseError(response, "Token format from response invalid")

        return TokenInfo.from_grant_response(response.body)

    def _require_app_auth(self) -> AppAuthConfig:
        if self.config.app_auth is None:
            msg = "Must provide app auth configuration to use JWT Grant"
            raise InvalidConfigError(msg, field="app_auth")
        return self.config.app_auth

    def _load_signing_key(self, app_auth: AppAuthConfig) -> PrivateKeyTypes:
        if self._signing_key is None:
            passphrase = (
                app_auth.passphrase.get_secret_value().encode()
                if app_auth.passphrase
                else None
            )
            self._signing_key = serialization.load_pem_private_key(
                app_auth.private_key.get_secret_value().encode(),
                password=passphrase,
            )
        return self._signing_key


def is_valid_token_response(grant_type: str, body: dict[str, Any]) -> bool:
    """Check a grant response body has the fields the grant must return."""
    if not is_valid_code_or_token(body.get("access_token")):
        return False

    expires_in = body.get("expires_in")
    if isinstance(expires_in, bool) or not isinstance(expires_in, int | float):
        return False

    if grant_type in (GrantType.AUTHORIZATION_CODE, GrantType.REFRESH_TOKEN):
        return is_valid_code_or_token(body.get("refresh_token"))

    return True
