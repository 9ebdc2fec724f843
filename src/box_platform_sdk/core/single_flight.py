"""Coalescing of concurrent token refreshes.

At most one refresh task exists per SingleFlight; every caller arriving
while it runs awaits that same task and observes the same result.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, TypeVar

from ..telemetry import get_logger

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Holds the in-flight task of one refresh operation."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._task: asyncio.Task[T] | None = None
        self._logger = get_logger()

    def start(self, factory: Callable[[], Awaitable[T]]) -> asyncio.Task[T]:
        """Start the operation unless it is already running.

        Args:
            factory: Called only when no task is in flight.

        Returns:
            The in-flight task.
        """
        if self._task is not None:
            self._logger.debug("Joining in-flight refresh", operation=self._name)
            return self._task

        task = asyncio.create_task(self._run(factory))
        task.add_done_callback(self._log_failure)
        self._task = task
        return task

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T:
        """Start or join the operation and wait for its result.

        A cancelled caller does not cancel the shared task.
        """
        return await asyncio.shield(self.start(factory))

    async def _run(self, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            self._task = None

    def _log_failure(self, task: asyncio.Task[T]) -> None:
        if task.cancelled():
            return
        # Retrieved here so background refreshes nobody awaits still surface
        error = task.exception()
        if error is not None:
            self._logger.warning(
                "Token refresh failed",
                operation=self._name,
                error=type(error).__name__,
            )
