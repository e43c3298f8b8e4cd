"""transcache: transparent two-tier (local + Redis) memoization with refresh-ahead.

    from transcache import TransparentCache

    cache = TransparentCache(remote_client_config={"url": "redis://localhost:6379/0"})
    cached_lookup = cache.wrap(lookup)
    value = await cached_lookup("some", arg=1)
"""

from transcache.core.config_resolver import ConfigurationResolver
from transcache.core.key_derivation import canonical_serialize, derive_key
from transcache.core.transparent_cache import CachedFunction, TransparentCache
from transcache.domain.exceptions import (
    ConfigurationError,
    KeyDerivationError,
    MissingFunctionIdError,
    MissingRemoteConnectionError,
    TranscacheError,
)
from transcache.domain.models.common import (
    ABSENT,
    DEFAULT_CONFIG,
    CacheDefaults,
    Found,
    RemoteTierConfig,
    TierConfig,
    WrapConfig,
)
from transcache.infrastructure.config.settings import Settings, load_settings
from transcache.infrastructure.monitoring.logger_setup import configure_logging, setup_logging

__version__ = "0.1.0"

__all__ = [
    "ABSENT",
    "DEFAULT_CONFIG",
    "CacheDefaults",
    "CachedFunction",
    "ConfigurationError",
    "ConfigurationResolver",
    "Found",
    "KeyDerivationError",
    "MissingFunctionIdError",
    "MissingRemoteConnectionError",
    "RemoteTierConfig",
    "Settings",
    "TierConfig",
    "TranscacheError",
    "TransparentCache",
    "WrapConfig",
    "canonical_serialize",
    "configure_logging",
    "derive_key",
    "load_settings",
    "setup_logging",
]
