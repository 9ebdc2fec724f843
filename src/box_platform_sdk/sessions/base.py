"""Session contract shared by every token acquisition strategy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import ValidationError

from ..models import TokenInfo

if TYPE_CHECKING:
    from ..errors import BoxSDKError
    from ..models import ActorParams, SharedLinkParams, TokenRequestOptions


@runtime_checkable
class Session(Protocol):
    """Capability set a client needs from its session."""

    async def get_access_token(
        self, options: TokenRequestOptions | None = None
    ) -> str: ...

    async def revoke_tokens(self, options: TokenRequestOptions | None = None) -> None: ...

    async def exchange_token(
        self,
        scopes: str | list[str],
        resource: str | None = None,
        *,
        options: TokenRequestOptions | None = None,
        actor: ActorParams | None = None,
        shared_link: SharedLinkParams | None = None,
    ) -> TokenInfo: ...

    async def handle_expired_tokens_error(self, error: BoxSDKError) -> None: ...


def coerce_token_info(value: Any, *, require_refresh_token: bool = False) -> TokenInfo:
    """Validate a TokenInfo or a mapping of its fields.

    Raises:
        ValueError: If required fields are missing or malformed.
    """
    msg = (
        "token_info is improperly formatted. Properties required: access_token, "
        + ("refresh_token, " if require_refresh_token else "")
        + "access_token_ttl_ms and acquired_at_ms."
    )
    if isinstance(value, TokenInfo):
        token_info = value
    else:
        try:
            token_info = TokenInfo.model_validate(value)
        except ValidationError as e:
            raise ValueError(msg) from e

    if require_refresh_token and not token_info.refresh_token:
        raise ValueError(msg)

    return token_info
