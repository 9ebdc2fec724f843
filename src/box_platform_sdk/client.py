"""Box API client bound to one session.

Every resource call resolves an access token through the session, attaches
the standard headers and runs through the shared request executor.
"""

from __future__ import annotations

import ipaddress
import re
from http import HTTPStatus
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from pydantic import ValidationError

from .batch import BatchExecutor
from .errors import BoxSDKError, ResponseError, UnexpectedResponseError
from .events import EnterpriseEventStream, EventStream
from .http import (
    HEADER_AS_USER,
    HEADER_AUTHORIZATION,
    HEADER_BOX_UA,
    HEADER_BOXAPI,
    HEADER_XFF,
    analytics_header,
)
from .models import EventPage, LongPollInfo, TokenRequestOptions
from .telemetry import get_logger

if TYPE_CHECKING:
    import httpx

    from .config import BoxConfig, RetryStrategy
    from .core.http_executor import RequestExecutor
    from .models import ActorParams, APIResponse, SharedLinkParams, TokenInfo
    from .sessions import Session

EVENTS_PATH = "/events"
CURRENT_STREAM_POSITION = "now"

_ABSOLUTE_URL = re.compile(r"^https?://")

# Characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"


def get_full_url(base_url: str, path: str) -> str:
    """Resolve a path against a base URL; absolute URLs are kept as-is."""
    if _ABSOLUTE_URL.match(path):
        return path
    return base_url + path


def build_shared_item_auth_header(url: str, password: str | None = None) -> str:
    """Build the BoxApi header value granting access to a shared item."""
    header = f"shared_link={quote(url, safe=_URI_COMPONENT_SAFE)}"
    if password:
        header += f"&shared_link_password={quote(password, safe=_URI_COMPONENT_SAFE)}"
    return header


class BoxClient:
    """Asynchronous Box API client for a single session."""

    def __init__(
        self,
        session: Session,
        config: BoxConfig,
        executor: RequestExecutor,
    ) -> None:
        """Initialize the client.

        Args:
            session: Source of access tokens.
            config: SDK configuration.
            executor: Shared request executor.
        """
        self.config = config
        self._session = session
        self._executor = executor
        self._custom_headers: dict[str, str] = {}
        self._token_options: TokenRequestOptions | None = None
        self._base_url = config.api_base_url
        self._upload_base_url = config.upload_base_url
        self._logger = get_logger()

    @property
    def session(self) -> Session:
        return self._session

    @property
    def base_url(self) -> str:
        return self._base_url

    def _create_headers(
        self,
        caller_headers: dict[str, str] | None,
        access_token: str,
    ) -> dict[str, str]:
        headers = {HEADER_AUTHORIZATION: f"Bearer {access_token}"}
        # Caller headers take precedence over the client's custom headers
        headers.update(self._custom_headers)
        if caller_headers:
            headers.update(caller_headers)
        # Analytics header last so it cannot be overwritten
        headers[HEADER_BOX_UA] = analytics_header(self.config.analytics_client)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: Any = None,
        files: Any = None,
        content: bytes | None = None,
        timeout: float | None = None,
        retry_strategy: RetryStrategy | None = None,
        num_max_retries: int | None = None,
    ) -> APIResponse:
        """Make an authenticated API request.

        Args:
            method: HTTP method.
            path: Path relative to the API base URL, or an absolute URL.
            base_url: Base URL to resolve ``path`` against instead.
            headers: Extra request headers.
            params: Query parameters.
            json: JSON body.
            data: Form body.
            files: Multipart files; disables retries.
            content: Raw body.
            timeout: Request timeout in seconds.
            retry_strategy: Per-request retry strategy.
            num_max_retries: Per-request retry limit.

        Returns:
            The API response.

        Raises:
            AuthExpiredError: After the session has handled the expired tokens.
        """
        access_token = await self._session.get_access_token(self._token_options)
        url = get_full_url(base_url or self._base_url, path)

        try:
            return await self._executor.execute(
                method,
                url,
                headers=self._create_headers(headers, access_token),
                params=params,
                json=json,
                data=data,
                files=files,
                content=content,
                timeout=timeout,
                retry_strategy=retry_strategy,
                num_max_retries=num_max_retries,
            )
        except BoxSDKError as e:
            if e.auth_expired:
                await self._session.handle_expired_tokens_error(e)
            raise

    async def get(self, path: str, **kwargs: Any) -> APIResponse:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> APIResponse:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> APIResponse:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> APIResponse:
        return await self.request("DELETE", path, **kwargs)

    async def options(self, path: str, **kwargs: Any) -> APIResponse:
        return await self.request("OPTIONS", path, **kwargs)

    async def upload(
        self,
        path: str,
        *,
        files: Any,
        data: Any = None,
        **kwargs: Any,
    ) -> APIResponse:
        """POST a multipart upload against the upload API."""
        kwargs.setdefault("timeout", self.config.upload_timeout)
        return await self.request(
            "POST",
            path,
            base_url=self._upload_base_url,
            files=files,
            data=data,
            **kwargs,
        )

    async def download_stream(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """GET a resource without reading its body.

        The caller must ``aclose()`` the returned response.
        """
        access_token = await self._session.get_access_token(self._token_options)
        try:
            return await self._executor.execute_stream(
                "GET",
                get_full_url(self._base_url, path),
                headers=self._create_headers(headers, access_token),
                params=params,
                timeout=timeout,
            )
        except BoxSDKError as e:
            if e.auth_expired:
                await self._session.handle_expired_tokens_error(e)
            raise

    def set_custom_header(self, header: str, value: str | None) -> None:
        """Set a header sent with every request; a falsy value removes it."""
        if value:
            self._custom_headers[header] = value
        else:
            self._custom_headers.pop(header, None)

    def set_ips(self, ips: list[str]) -> None:
        """Forward end-client IPs on API and token requests.

        Invalid addresses are dropped.
        """
        valid = []
        for ip in ips:
            try:
                ipaddress.ip_address(ip)
            except ValueError:
                continue
            valid.append(ip)

        value = ", ".join(valid)
        self.set_custom_header(HEADER_XFF, value)
        self._token_options = TokenRequestOptions(ip=value or None)

    def set_shared_context(self, url: str, password: str | None = None) -> None:
        """Act in the context of a shared item."""
        self.set_custom_header(HEADER_BOXAPI, build_shared_item_auth_header(url, password))

    def revoke_shared_context(self) -> None:
        self.set_custom_header(HEADER_BOXAPI, None)

    def as_user(self, user_id: str) -> None:
        """Make subsequent requests on behalf of another user."""
        self.set_custom_header(HEADER_AS_USER, user_id)

    def as_self(self) -> None:
        self.set_custom_header(HEADER_AS_USER, None)

    async def revoke_tokens(self) -> None:
        await self._session.revoke_tokens(self._token_options)

    async def exchange_token(
        self,
        scopes: str | list[str],
        resource: str | None = None,
        *,
        actor: ActorParams | None = None,
        shared_link: SharedLinkParams | None = None,
    ) -> TokenInfo:
        """Exchange the session's token for a downscoped one."""
        return await self._session.exchange_token(
            scopes,
            resource,
            options=self._token_options,
            actor=actor,
            shared_link=shared_link,
        )

    def batch(self) -> BatchExecutor:
        """Start collecting requests to send as one batch call."""
        return BatchExecutor(self)

    async def get_events(self, **params: Any) -> EventPage:
        """Fetch one page of events."""
        response = await self.get(EVENTS_PATH, params=params)
        if response.status_code != HTTPStatus.OK:
            raise UnexpectedResponseError(response)
        try:
            return EventPage.model_validate(response.body)
        except ValidationError as e:
            raise ResponseError(response, "Malformed events page") from e

    async def get_current_stream_position(self) -> str | int:
        """Get the stream position of the latest event."""
        page = await self.get_events(stream_position=CURRENT_STREAM_POSITION)
        return page.next_stream_position

    async def get_long_poll_info(self) -> LongPollInfo:
        """Discover the realtime server to long-poll for new events.

        Raises:
            ResponseError: If no realtime server is offered.
        """
        response = await self.options(EVENTS_PATH)
        if response.status_code != HTTPStatus.OK:
            raise UnexpectedResponseError(response)

        entries = response.body.get("entries", []) if isinstance(response.body, dict) else []
        for entry in entries:
            if isinstance(entry, dict) and entry.get("type") == "realtime_server":
                try:
                    return LongPollInfo.model_validate(entry)
                except ValidationError as e:
                    raise ResponseError(response, "Malformed long poll server") from e

        raise ResponseError(response, "No valid long poll server specified")

    async def get_event_stream(
        self,
        stream_position: str | int | None = None,
        **options: Any,
    ) -> EventStream:
        """Create a stream of user events.

        Starts at the current position when none is given.
        """
        if stream_position is None:
            stream_position = await self.get_current_stream_position()
        return EventStream(self, stream_position, **options)

    def get_enterprise_event_stream(self, **options: Any) -> EnterpriseEventStream:
        """Create a stream of enterprise admin events."""
        return EnterpriseEventStream(self, **options)
