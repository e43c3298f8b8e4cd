"""Transparent two-tier memoization.

`TransparentCache` holds the shared Redis client and the constructor-level
configuration. `wrap` turns any function (sync or async) into a
`CachedFunction` that serves results from a private local tier, then from
the shared remote tier, and only then invokes the function. After every
successful call the entry's remaining remote TTL is checked and, when it
drops below `remote.ttl_ms - local.ttl_ms`, the function is re-invoked in the
background to refresh both tiers before they expire.

Example:
    cache = TransparentCache(remote_client_config={"url": "redis://localhost:6379/0"})

    async def fetch_user(user_id):
        ...

    cached_fetch_user = cache.wrap(fetch_user, {"local": {"ttl_ms": 10_000}})
    user = await cached_fetch_user(42)
    await cached_fetch_user.delete(42)
"""

import asyncio
import functools
import logging
import types
from typing import Any, Callable, Dict, Mapping, Optional, Set, Tuple

from redis.asyncio import Redis

from transcache.core.config_resolver import ConfigurationResolver
from transcache.core.key_derivation import derive_key, resolve_function_id
from transcache.core.single_flight import SingleFlight
from transcache.domain.events.cache_events import (
    CacheDeleted,
    CacheHit,
    CacheMiss,
    CachePopulated,
    EventDispatcher,
    EventListener,
    RefreshFailed,
    RefreshScheduled,
)
from transcache.domain.exceptions import ConfigurationError, MissingRemoteConnectionError
from transcache.domain.interfaces.cache import LocalCacheTier, RemoteCacheTier
from transcache.domain.models.common import DEFAULT_CONFIG, CacheDefaults, CacheKey, Found, WrapConfig
from transcache.infrastructure.cache.local_tier import LocalTier
from transcache.infrastructure.cache.remote_tier import RemoteTier, maybe_await
from transcache.infrastructure.config.settings import Settings

logger = logging.getLogger(__name__)

# Applied under any user-supplied client options
DEFAULT_REDIS_OPTIONS: Dict[str, Any] = {
    "decode_responses": True,
    "socket_connect_timeout": 1.0,
}


class CachedFunction:
    """A wrapped function backed by a local and a remote tier.

    Await it with the original function's arguments. `delete` takes the same
    arguments and removes the matching entry from both tiers.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        config: WrapConfig,
        local_tier: LocalCacheTier,
        remote_tier: RemoteCacheTier,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        functools.update_wrapper(self, func)
        self.func = func
        self.config = config
        self.function_id = config.function_id
        self.local_tier = local_tier
        self.remote_tier = remote_tier
        self.dispatcher = dispatcher or EventDispatcher()
        self._population = SingleFlight()
        self._refreshes = SingleFlight()
        # Refresh tasks whose result must not be written (entry deleted meanwhile)
        self._discarded_refreshes: Set["asyncio.Future[Any]"] = set()

    def __repr__(self) -> str:
        return f"<CachedFunction {self.function_id}>"

    def key_for(self, *args: Any, **kwargs: Any) -> CacheKey:
        """Returns the cache key used for a call with these arguments."""
        return derive_key(self.function_id, args, kwargs)

    async def __call__(self, *args: Any, **kwargs: Any) -> Any:
        key = self.key_for(*args, **kwargs)
        logger.debug(f"get value for key {key}")

        lookup = self.local_tier.get(key)
        if isinstance(lookup, Found):
            logger.debug(f"Found value in local cache for key {key}")
            self.dispatcher.dispatch(CacheHit(function_id=self.function_id, key=key, tier="local"))
            value = lookup.value
        else:
            lookup = await self.remote_tier.get(key)
            if isinstance(lookup, Found):
                logger.debug(f"Found value in remote cache for key {key}")
                self.dispatcher.dispatch(CacheHit(function_id=self.function_id, key=key, tier="remote"))
                value = lookup.value
                self.local_tier.set(key, value)
            else:
                self.dispatcher.dispatch(CacheMiss(function_id=self.function_id, key=key))
                value = await self._populate(key, args, kwargs)

        refresh = self._refreshes.spawn(key, lambda: self._check_and_refresh(key, args, kwargs))
        if self.config.wait_for_refresh:
            await asyncio.shield(refresh)
        return value

    async def delete(self, *args: Any, **kwargs: Any) -> None:
        """Removes the entry for these arguments from both tiers.

        Both deletions are best-effort; a failing remote delete is logged by
        the remote tier and does not raise. A refresh in flight for the same
        key is not awaited; its result is discarded instead. A refresh that
        already started writing the tiers may still land.
        """
        key = self.key_for(*args, **kwargs)
        refresh = self._refreshes.pending(key)
        if refresh is not None and not refresh.done():
            self._discarded_refreshes.add(refresh)
        self.local_tier.delete(key)
        await self.remote_tier.delete(key)
        self.dispatcher.dispatch(CacheDeleted(function_id=self.function_id, key=key))

    async def wait_for_refreshes(self) -> None:
        """Waits for every background refresh currently in flight."""
        await self._refreshes.wait()

    async def _invoke(self, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Any:
        return await maybe_await(self.func(*args, **kwargs))

    async def _update_tiers(self, key: CacheKey, value: Any) -> None:
        # Local first; the remote write is attempted regardless and never raises
        self.local_tier.set(key, value)
        await self.remote_tier.set(key, value)

    async def _populate(self, key: CacheKey, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Any:
        async def compute() -> Any:
            value = await self._invoke(args, kwargs)
            await self._update_tiers(key, value)
            self.dispatcher.dispatch(CachePopulated(function_id=self.function_id, key=key))
            return value

        if self.config.single_flight:
            return await self._population.do(key, compute)
        return await compute()

    async def _check_and_refresh(self, key: CacheKey, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> None:
        """Re-invokes the function when the remote entry is close to expiry.

        Never raises: the triggering call has already produced its value.
        """
        try:
            remaining_ms = await self.remote_tier.remaining_ttl_ms(key)
            threshold_ms = self.config.refresh_threshold_ms
            logger.debug(
                f"TTL: {remaining_ms} Remote TTL: {self.config.remote.ttl_ms} "
                f"Local TTL: {self.config.local.ttl_ms} Min Time Remaining: {threshold_ms}"
            )
            if remaining_ms is not None and remaining_ms >= threshold_ms:
                logger.debug(f"No cache refresh required for key {key}")
                return

            logger.debug(f"TTL requires cache refresh for key {key}")
            self.dispatcher.dispatch(RefreshScheduled(
                function_id=self.function_id, key=key, remaining_ttl_ms=remaining_ms,
            ))
            value = await self._invoke(args, kwargs)
            if asyncio.current_task() in self._discarded_refreshes:
                logger.debug(f"Discarding refresh for key {key}, entry was deleted")
                return
            await self._update_tiers(key, value)
            self.dispatcher.dispatch(CachePopulated(function_id=self.function_id, key=key, refreshed=True))
        except Exception as e:
            logger.error(f"Error while refreshing wrapped function {self.function_id} for key {key}: {e}", exc_info=True)
            self.dispatcher.dispatch(RefreshFailed(
                function_id=self.function_id,
                key=key,
                error_type=type(e).__name__,
                error_message=str(e),
            ))
        finally:
            self._discarded_refreshes.discard(asyncio.current_task())


class TransparentCache:
    """Factory for cached functions sharing one Redis client and one configuration."""

    def __init__(
        self,
        remote_client: Optional[Any] = None,
        remote_client_config: Optional[Mapping[str, Any]] = None,
        local: Optional[Mapping[str, Any]] = None,
        remote: Optional[Mapping[str, Any]] = None,
        wait_for_refresh: Optional[bool] = None,
        single_flight: Optional[bool] = None,
        defaults: CacheDefaults = DEFAULT_CONFIG,
        event_listener: Optional[EventListener] = None,
    ):
        """Initializes the cache.

        Args:
            remote_client: A `redis.asyncio.Redis` (or compatible) client.
            remote_client_config: Options for building a `redis.asyncio.Redis`;
                a `url` entry is passed to `Redis.from_url`. Exactly one of
                `remote_client` and `remote_client_config` is required.
            local: Overrides for the local tier (`max_entries`, `ttl_ms`).
            remote: Overrides for the remote tier (`max_entries`, `ttl_ms`,
                `command_timeout_ms`, `to_transport`, `from_transport`).
            wait_for_refresh: Await refresh-ahead inside each call.
            single_flight: Share one invocation among concurrent misses.
            defaults: Lowest configuration layer.
            event_listener: Optional callable receiving every cache event.

        Raises:
            MissingRemoteConnectionError: If neither client nor config is given.
            ConfigurationError: If both are given, or if the merged
                configuration is invalid.
        """
        if remote_client is None and not remote_client_config:
            raise MissingRemoteConnectionError()
        if remote_client is not None and remote_client_config:
            raise ConfigurationError("Provide either remote_client or remote_client_config, not both")

        overrides: Dict[str, Any] = {}
        if local is not None:
            overrides["local"] = local
        if remote is not None:
            overrides["remote"] = remote
        if wait_for_refresh is not None:
            overrides["wait_for_refresh"] = wait_for_refresh
        if single_flight is not None:
            overrides["single_flight"] = single_flight
        self.resolver = ConfigurationResolver(defaults, overrides)

        self.dispatcher = EventDispatcher(event_listener)
        self._owns_client = remote_client is None
        if remote_client is None:
            remote_client = self._create_client(remote_client_config)
        self.remote_client = remote_client

        config = self.config
        logger.info(
            f"TransparentCache initialized. Local(ttl={config.local.ttl_ms}ms, max={config.local.max_entries}), "
            f"Remote(ttl={config.remote.ttl_ms}ms, timeout={config.remote.command_timeout_ms}ms)"
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "TransparentCache":
        """Builds a cache from loaded `Settings`; keyword arguments take precedence."""
        overrides = settings.cache_overrides()
        for name in ("local", "remote", "wait_for_refresh"):
            if name in overrides:
                kwargs.setdefault(name, overrides[name])
        if kwargs.get("remote_client") is None and settings.remote_client_config:
            kwargs.setdefault("remote_client_config", settings.remote_client_config)
        return cls(**kwargs)

    @staticmethod
    def _create_client(remote_client_config: Mapping[str, Any]) -> Redis:
        options = {**DEFAULT_REDIS_OPTIONS, **remote_client_config}
        url = options.pop("url", None)
        if url:
            return Redis.from_url(url, **options)
        return Redis(**options)

    @property
    def config(self) -> CacheDefaults:
        """The validated constructor-level configuration."""
        return self.resolver.base

    def wrap(
        self,
        func: Callable[..., Any],
        override_config: Optional[Mapping[str, Any]] = None,
        function_id: Optional[str] = None,
        context: Any = None,
    ) -> CachedFunction:
        """Wraps `func` with two-tier caching.

        Args:
            func: Function to cache; may be sync or async.
            override_config: Wrap-level overrides (`local`, `remote`,
                `wait_for_refresh`, `single_flight`).
            function_id: Stable identifier; required for anonymous functions.
            context: Object `func` is bound to as its first argument. It does
                not take part in the cache key.

        Raises:
            MissingFunctionIdError: If no identifier can be derived.
            ConfigurationError: If the overrides are invalid.
        """
        internal_function_id = resolve_function_id(func, function_id)
        config = self.resolver.resolve(internal_function_id, override_config)

        if context is not None:
            func = types.MethodType(func, context)

        local_tier = LocalTier(config.local)
        remote_tier = RemoteTier(config.remote, self.remote_client, self.dispatcher)
        logger.debug(f"Wrapped {internal_function_id} (wait_for_refresh={config.wait_for_refresh})")
        return CachedFunction(func, config, local_tier, remote_tier, self.dispatcher)

    def cached(
        self,
        override_config: Optional[Mapping[str, Any]] = None,
        function_id: Optional[str] = None,
    ) -> Callable[[Callable[..., Any]], CachedFunction]:
        """Decorator form of `wrap`."""
        def decorator(func: Callable[..., Any]) -> CachedFunction:
            return self.wrap(func, override_config, function_id)
        return decorator

    async def close(self) -> None:
        """Closes the Redis client if this cache created it."""
        if self._owns_client:
            await self.remote_client.aclose()
