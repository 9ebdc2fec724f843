"""Batching several API calls into one request.

Queued calls return futures. Executing the batch sends them together and
settles each future with its own sub-response; one failing sub-request
doesn't affect the others.
"""

from __future__ import annotations

import asyncio
import re
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Self
from urllib.parse import urlencode

from .core.errors import ErrorFactory
from .errors import UnexpectedResponseError
from .models import APIResponse
from .telemetry import get_logger

if TYPE_CHECKING:
    from .client import BoxClient

BATCH_PATH = "/batch"

# Everything up to and including the API version, e.g. "https://api.box.com/2.0/"
_API_BASE_PREFIX = re.compile(r"^https?://.*?/\d\.\d/")


def to_relative_url(url: str, params: dict[str, Any] | None = None) -> str:
    """Strip the API base from a URL and append its query string."""
    relative = _API_BASE_PREFIX.sub("/", url, count=1)
    if params:
        relative += f"?{urlencode(params, doseq=True)}"
    return relative


class BatchExecutor:
    """Collects requests and sends them as one batch call.

    Usable as an async context manager, which executes the batch on exit
    unless the block raised.
    """

    def __init__(self, client: BoxClient) -> None:
        self._client = client
        self._queue: list[tuple[dict[str, Any], asyncio.Future[APIResponse]]] = []
        self._done = False
        self._logger = get_logger()

    def __len__(self) -> int:
        return len(self._queue)

    def queue(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> asyncio.Future[APIResponse]:
        """Add a request to the batch.

        Returns:
            Future settled with the sub-response once the batch runs. A
            4xx/5xx sub-status sets the matching ResponseError instead.

        Raises:
            RuntimeError: If the batch already ran or was cancelled.
        """
        self._check_open()

        url = path if path.startswith(("http://", "https://")) else self._client.base_url + path
        request: dict[str, Any] = {
            "method": method.upper(),
            "relative_url": to_relative_url(url, params),
        }
        if json is not None:
            request["body"] = json
        if headers:
            request["headers"] = headers

        future: asyncio.Future[APIResponse] = asyncio.get_running_loop().create_future()
        self._queue.append((request, future))
        return future

    def get(self, path: str, **kwargs: Any) -> asyncio.Future[APIResponse]:
        return self.queue("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> asyncio.Future[APIResponse]:
        return self.queue("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> asyncio.Future[APIResponse]:
        return self.queue("PUT", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> asyncio.Future[APIResponse]:
        return self.queue("DELETE", path, **kwargs)

    def cancel(self) -> None:
        """Discard the batch, cancelling every queued future."""
        self._check_open()
        self._done = True
        for _, future in self._queue:
            future.cancel()

    async def execute(self) -> APIResponse:
        """Send the queued requests and settle their futures.

        Returns:
            The response of the batch call itself.

        Raises:
            RuntimeError: If the batch already ran or was cancelled.
            BoxSDKError: If the batch call failed as a whole; every queued
                future gets the same error.
        """
        self._check_open()
        self._done = True
        queue = self._queue

        try:
            response = await self._client.post(
                BATCH_PATH,
                json={"requests": [request for request, _ in queue]},
            )
            if response.status_code != HTTPStatus.OK or not isinstance(response.body, dict):
                raise UnexpectedResponseError(response)
        except asyncio.CancelledError:
            for _, future in queue:
                future.cancel()
            raise
        except Exception as e:
            for _, future in queue:
                if not future.done():
                    future.set_exception(e)
            raise

        responses = response.body.get("responses") or []
        self._logger.debug(
            "Demultiplexing batch response",
            requested=len(queue),
            received=len(responses),
        )

        for index, (request, future) in enumerate(queue):
            if future.done():
                continue
            if index >= len(responses):
                future.set_exception(
                    UnexpectedResponseError(response, "Missing batch sub-response")
                )
                continue
            self._settle(future, request, responses[index])

        return response

    def _settle(
        self,
        future: asyncio.Future[APIResponse],
        request: dict[str, Any],
        sub_response: dict[str, Any],
    ) -> None:
        status = int(sub_response.get("status", 0))
        headers = sub_response.get("headers") or {}
        body = sub_response.get("response")

        if not HTTPStatus.OK <= status < HTTPStatus.BAD_REQUEST:
            future.set_exception(ErrorFactory.from_status(status, headers, body))
            return

        future.set_result(
            APIResponse(
                status_code=status,
                headers={k.lower(): str(v) for k, v in headers.items()},
                body=body,
                method=request["method"],
                url=request["relative_url"],
            )
        )

    def _check_open(self) -> None:
        if self._done:
            msg = "Batch has already been executed or cancelled"
            raise RuntimeError(msg)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: Any, *args: Any) -> None:
        if self._done:
            return
        if exc_type is not None:
            self.cancel()
            return
        await self.execute()
