import asyncio
from collections import Counter
from typing import Dict, Optional, Tuple

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from transcache.core.transparent_cache import TransparentCache
from transcache.infrastructure.cache.local_tier import LocalTier


class FakeClock:
    """Manually advanced clock (seconds), shared by the fakes below."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """In-memory stand-in for the subset of redis.asyncio.Redis the remote tier uses."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.store: Dict[str, Tuple[str, Optional[float]]] = {}
        self.calls: Counter = Counter()

    def _entry(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        entry = self.store.get(key)
        if entry is not None and entry[1] is not None and self.clock() >= entry[1]:
            del self.store[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        self.calls["get"] += 1
        entry = self._entry(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: str, px: Optional[int] = None) -> bool:
        self.calls["set"] += 1
        expires = self.clock() + px / 1000 if px else None
        self.store[key] = (value, expires)
        return True

    async def delete(self, *keys: str) -> int:
        self.calls["delete"] += 1
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    async def pttl(self, key: str) -> int:
        self.calls["pttl"] += 1
        entry = self._entry(key)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return int((entry[1] - self.clock()) * 1000)

    def set_remaining_ttl(self, key: str, remaining_ms: int) -> None:
        value, _ = self.store[key]
        self.store[key] = (value, self.clock() + remaining_ms / 1000)


class HangingRedis:
    """Every command takes far longer than any command timeout."""

    def __init__(self, delay: float = 0.5):
        self.delay = delay
        self.calls: Counter = Counter()

    async def _hang(self, name: str) -> None:
        self.calls[name] += 1
        await asyncio.sleep(self.delay)

    async def get(self, key):
        await self._hang("get")

    async def set(self, key, value, px=None):
        await self._hang("set")

    async def delete(self, *keys):
        await self._hang("delete")

    async def pttl(self, key):
        await self._hang("pttl")
        return 10_000_000


class FailingRedis:
    """Every command fails like an unreachable server."""

    def __init__(self):
        self.calls: Counter = Counter()

    async def _fail(self, name: str):
        self.calls[name] += 1
        raise RedisConnectionError("Connection refused")

    async def get(self, key):
        return await self._fail("get")

    async def set(self, key, value, px=None):
        return await self._fail("set")

    async def delete(self, *keys):
        return await self._fail("delete")

    async def pttl(self, key):
        return await self._fail("pttl")


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_redis(fake_clock):
    return FakeRedis(fake_clock)


@pytest.fixture
def hanging_redis():
    return HangingRedis()


@pytest.fixture
def failing_redis():
    return FailingRedis()


@pytest.fixture
def cache(fake_redis):
    """TransparentCache backed by the in-memory Redis double."""
    return TransparentCache(remote_client=fake_redis)


@pytest.fixture
def use_fake_clock(fake_clock):
    """Returns a helper that moves a cached function's local tier onto the fake clock."""
    def _apply(cached):
        cached.local_tier = LocalTier(cached.config.local, timer=fake_clock)
        return cached
    return _apply


class CallCounter:
    """Callable recording how often it was invoked; returns a fixed or computed value."""

    def __init__(self, result="v1"):
        self.result = result
        self.calls = []

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        if callable(self.result):
            return self.result(*args, **kwargs)
        return self.result

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def counter():
    """Factory for call-counting wrapped functions."""
    return CallCounter
