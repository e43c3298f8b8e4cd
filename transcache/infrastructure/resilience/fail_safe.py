"""Fail-safe execution of remote cache commands.

Every remote command is raced against a fixed timeout. A command that errors
or runs too long is logged and replaced by a fallback result, so remote
operations are total and bounded in latency. The timeout abandons the wait,
not the command itself: the command keeps running in the background and may
still complete in the remote store.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from transcache.domain.events.cache_events import EventDispatcher, RemoteOperationFailed

logger = logging.getLogger(__name__)


def _consume_result(task: "asyncio.Future[Any]") -> None:
    """Marks an abandoned task's exception as retrieved."""
    if not task.cancelled():
        task.exception()


class FailSafeExecutor:
    """Runs remote commands with a timeout and converts failures to fallbacks."""

    def __init__(self, command_timeout_ms: int, dispatcher: Optional[EventDispatcher] = None):
        """Initializes the executor.

        Args:
            command_timeout_ms: Maximum time to wait for any single command.
            dispatcher: Optional event dispatcher for failure events.
        """
        self.command_timeout_ms = command_timeout_ms
        self.dispatcher = dispatcher or EventDispatcher()

    @property
    def timeout_seconds(self) -> float:
        return self.command_timeout_ms / 1000

    async def execute(
        self,
        operation: str,
        action: Callable[[], Awaitable[Any]],
        fallback: Any = None,
        key: Optional[str] = None,
    ) -> Any:
        """Executes `action` inside the fail-safe envelope.

        Args:
            operation: Name of the remote command (for logging/events).
            action: Zero-argument callable returning the command's awaitable.
            fallback: Value returned when the command fails or times out.
            key: Cache key the command operates on, if any.

        Returns:
            The command's result, or `fallback`.
        """
        try:
            task = asyncio.ensure_future(action())
        except Exception as e:
            self._report(operation, key, e)
            return fallback

        task.add_done_callback(_consume_result)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            self._report(operation, key, e, timed_out=True)
            return fallback
        except Exception as e:
            self._report(operation, key, e)
            return fallback

    def _report(self, operation: str, key: Optional[str], error: Exception, timed_out: bool = False) -> None:
        if timed_out:
            message = f"timed out after {self.command_timeout_ms}ms"
        else:
            message = str(error)
        logger.warning(f"Error during remote '{operation}' for key {key}: {type(error).__name__}: {message}")
        self.dispatcher.dispatch(RemoteOperationFailed(
            operation=operation,
            key=key,
            error_type=type(error).__name__,
            error_message=message,
        ))
