"""Interfaces for the two cache tiers.

Defines the contract the orchestrator relies on when storing, retrieving and
deleting cached values. The local tier is synchronous (in-process memory);
the remote tier is asynchronous and must be total: it never raises, it
reports failures as misses or no-ops instead.
"""

import abc
from typing import Any, Optional

from ..models.common import CacheKey, Lookup


class LocalCacheTier(abc.ABC):
    """Abstract Base Class for the in-process tier."""

    @abc.abstractmethod
    def get(self, key: CacheKey) -> Lookup[Any]:
        """Retrieves an item from the tier.

        Args:
            key: The cache key to retrieve.

        Returns:
            Found(value) if present and not expired, otherwise ABSENT.
        """
        pass

    @abc.abstractmethod
    def set(self, key: CacheKey, value: Any, ttl_ms: Optional[int] = None) -> None:
        """Stores an item in the tier.

        Args:
            key: The cache key to store the item under.
            value: The item to store.
            ttl_ms: Time-to-live in milliseconds (uses the tier default if None).
        """
        pass

    @abc.abstractmethod
    def delete(self, key: CacheKey) -> None:
        """Deletes an item from the tier. Missing keys are ignored."""
        pass


class RemoteCacheTier(abc.ABC):
    """Abstract Base Class for the shared, network-backed tier."""

    @abc.abstractmethod
    async def get(self, key: CacheKey) -> Lookup[Any]:
        """Retrieves an item asynchronously.

        Returns:
            Found(value) if the remote store answered with a value in time,
            otherwise ABSENT (missing, expired, slow or unreachable).
        """
        pass

    @abc.abstractmethod
    async def set(self, key: CacheKey, value: Any, ttl_ms: Optional[int] = None) -> None:
        """Stores an item with an expiry. Failures are logged and ignored."""
        pass

    @abc.abstractmethod
    async def delete(self, key: CacheKey) -> None:
        """Deletes an item. Failures are logged and ignored."""
        pass

    @abc.abstractmethod
    async def remaining_ttl_ms(self, key: CacheKey) -> Optional[int]:
        """Returns the remaining lifetime of an item in milliseconds.

        Returns:
            The remaining TTL, or None if the item is missing, has no expiry,
            or the remote store could not answer in time.
        """
        pass
