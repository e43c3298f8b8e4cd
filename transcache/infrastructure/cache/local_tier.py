"""In-process cache tier.

A bounded map with per-entry expiry, evicting the least recently used entry
once `max_entries` is exceeded. Storage and eviction are delegated to
`cachetools.TLRUCache`; this adapter only adds the per-entry TTL and the
tagged lookup result.
"""

import logging
import time
from typing import Any, Callable, NamedTuple, Optional

from cachetools import TLRUCache

from transcache.domain.interfaces.cache import LocalCacheTier
from transcache.domain.models.common import ABSENT, CacheKey, Found, Lookup, TierConfig

logger = logging.getLogger(__name__)


class _LocalEntry(NamedTuple):
    value: Any
    ttl_seconds: float


def _time_to_use(key: CacheKey, entry: _LocalEntry, now: float) -> float:
    return now + entry.ttl_seconds


class LocalTier(LocalCacheTier):
    """Bounded, TTL-aware in-memory tier private to one wrapped function."""

    def __init__(self, config: TierConfig, timer: Callable[[], float] = time.monotonic):
        """Initializes the tier.

        Args:
            config: Entry limit and default TTL.
            timer: Clock in seconds used for expiry (monotonic by default).
        """
        self.config = config
        self.client: TLRUCache = TLRUCache(maxsize=config.max_entries, ttu=_time_to_use, timer=timer)
        logger.debug(f"LocalTier initialized (max={config.max_entries}, ttl={config.ttl_ms}ms)")

    def get(self, key: CacheKey) -> Lookup[Any]:
        entry = self.client.get(key)
        if entry is None:
            return ABSENT
        return Found(entry.value)

    def set(self, key: CacheKey, value: Any, ttl_ms: Optional[int] = None) -> None:
        ttl = self.config.ttl_ms if ttl_ms is None else ttl_ms
        self.client[key] = _LocalEntry(value, ttl / 1000)

    def delete(self, key: CacheKey) -> None:
        self.client.pop(key, None)

    def clear(self) -> None:
        """Drops every entry (the remote tier is untouched)."""
        self.client.clear()

    def __len__(self) -> int:
        return len(self.client)
