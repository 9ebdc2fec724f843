"""Token persistence for sessions shared across processes.

A store holds the tokens of exactly one identity; the embedding application
constructs one store per user or per app-auth subject.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, runtime_checkable

from .models import TokenInfo

_STORE_METHODS = ("read", "write", "clear")


@runtime_checkable
class TokenStore(Protocol):
    """Async storage for a single identity's TokenInfo."""

    async def read(self) -> TokenInfo | None: ...

    async def write(self, token_info: TokenInfo) -> None: ...

    async def clear(self) -> None: ...


def validate_token_store(obj: Any) -> TokenStore:
    """Ensure an object provides the token store methods.

    Raises:
        TypeError: If a method is missing or not callable.
    """
    missing = [name for name in _STORE_METHODS if not callable(getattr(obj, name, None))]
    if missing:
        msg = (
            "Token store provided but is improperly formatted. "
            f"Methods required: read(), write(), clear(). Missing: {', '.join(missing)}"
        )
        raise TypeError(msg)
    return obj


class MemoryTokenStore:
    """In-process token store.

    Useful for tests and single-process apps that still want the store
    reconciliation behavior of persistent sessions.
    """

    def __init__(self, token_info: TokenInfo | None = None) -> None:
        self._token_info = token_info
        self._lock = asyncio.Lock()

    async def read(self) -> TokenInfo | None:
        async with self._lock:
            return self._token_info

    async def write(self, token_info: TokenInfo) -> None:
        async with self._lock:
            self._token_info = token_info

    async def clear(self) -> None:
        async with self._lock:
            self._token_info = None
