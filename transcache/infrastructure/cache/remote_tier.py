"""Shared cache tier backed by Redis.

Values are converted with the configured transport hooks and stored as a
JSON envelope `{"value": ...}` so that a cached null/falsy payload can be
told apart from a missing key. Every command goes through the fail-safe
envelope, which makes all operations total and bounded in latency.
"""

import inspect
import json
import logging
from typing import Any, Optional

from transcache.domain.events.cache_events import EventDispatcher
from transcache.domain.interfaces.cache import RemoteCacheTier
from transcache.domain.models.common import ABSENT, CacheKey, Found, Lookup, RemoteTierConfig
from transcache.infrastructure.resilience.fail_safe import FailSafeExecutor

logger = logging.getLogger(__name__)

# All remote keys live under this namespace in the shared store
REMOTE_KEY_PREFIX = "trans-cache-"
ENVELOPE_FIELD = "value"


async def maybe_await(value: Any) -> Any:
    """Awaits `value` if it is awaitable, otherwise returns it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


class RemoteTier(RemoteCacheTier):
    """Redis-backed tier; the client is shared across wrapped functions."""

    def __init__(
        self,
        config: RemoteTierConfig,
        client: Any,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        """Initializes the tier.

        Args:
            config: TTL, command timeout and transport hooks.
            client: A `redis.asyncio.Redis` (or compatible) client.
            dispatcher: Optional event dispatcher for failure events.
        """
        self.config = config
        self.client = client
        self.fail_safe = FailSafeExecutor(config.command_timeout_ms, dispatcher)

    @staticmethod
    def remote_key(key: CacheKey) -> str:
        return REMOTE_KEY_PREFIX + key

    async def get(self, key: CacheKey) -> Lookup[Any]:
        raw = await self.fail_safe.execute("get", lambda: self.client.get(self.remote_key(key)), key=key)
        if raw is None:
            return ABSENT
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            envelope = json.loads(raw)
            payload = envelope[ENVELOPE_FIELD]
            return Found(await maybe_await(self.config.from_transport(payload)))
        except Exception as e:
            logger.warning(f"Discarding unreadable remote value for key {key}: {type(e).__name__}: {e}")
            return ABSENT

    async def set(self, key: CacheKey, value: Any, ttl_ms: Optional[int] = None) -> None:
        ttl = self.config.ttl_ms if ttl_ms is None else ttl_ms
        try:
            payload = await maybe_await(self.config.to_transport(value))
            data = json.dumps({ENVELOPE_FIELD: payload})
        except Exception as e:
            logger.warning(f"Skipping remote write for key {key}, value not serializable: {type(e).__name__}: {e}")
            return
        await self.fail_safe.execute("set", lambda: self.client.set(self.remote_key(key), data, px=ttl), key=key)

    async def delete(self, key: CacheKey) -> None:
        await self.fail_safe.execute("delete", lambda: self.client.delete(self.remote_key(key)), key=key)

    async def remaining_ttl_ms(self, key: CacheKey) -> Optional[int]:
        pttl = await self.fail_safe.execute("pttl", lambda: self.client.pttl(self.remote_key(key)), key=key)
        # -2: no such key, -1: key without expiry
        if pttl is None or pttl < 0:
            return None
        return int(pttl)
