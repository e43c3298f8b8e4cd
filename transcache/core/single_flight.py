"""Per-key coordination of in-flight work.

Only one task runs per key at a time; every other caller for that key awaits
the same task instead of starting its own.
"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class SingleFlight:
    """Maps keys to their in-flight task."""

    def __init__(self) -> None:
        self._calls: Dict[str, "asyncio.Future[Any]"] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def in_flight(self, key: str) -> bool:
        return key in self._calls

    def pending(self, key: str) -> "Optional[asyncio.Future[Any]]":
        """Returns the task currently running for `key`, if any."""
        return self._calls.get(key)

    def spawn(self, key: str, func: Callable[[], Awaitable[Any]]) -> "asyncio.Future[Any]":
        """Starts `func` for `key` unless a task for it is already running.

        Returns:
            The task doing the work for `key`.
        """
        task = self._calls.get(key)
        if task is not None:
            logger.debug(f"Joining in-flight task for key: {key}")
            return task
        task = asyncio.ensure_future(func())
        self._calls[key] = task
        task.add_done_callback(functools.partial(self._forget, key))
        return task

    async def do(self, key: str, func: Callable[[], Awaitable[Any]]) -> Any:
        """Runs `func` once per key and returns its result to every caller.

        Cancelling one caller does not cancel the shared task.
        """
        return await asyncio.shield(self.spawn(key, func))

    async def wait(self) -> None:
        """Waits until every task currently in flight has finished."""
        pending = list(self._calls.values())
        if pending:
            await asyncio.wait(pending)

    def _forget(self, key: str, task: "asyncio.Future[Any]") -> None:
        if self._calls.get(key) is task:
            del self._calls[key]
        if not task.cancelled():
            # Retrieve so an exception nobody awaited is not reported as lost
            task.exception()
