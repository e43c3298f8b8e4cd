"""Defines common Value Objects used across the cache layers.

These objects represent keys, lookup results and the per-tier configuration
that the resolver produces and the tier adapters consume.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, NewType, TypeVar, Union

V = TypeVar("V")

# === Caching Context ===
CacheKey = NewType("CacheKey", str)      # function id + canonical arguments
FunctionId = NewType("FunctionId", str)  # Stable identifier of a wrapped function


def _identity(value: Any) -> Any:
    return value


# === Lookup Results ===

@dataclass(frozen=True)
class Found(Generic[V]):
    """A tier lookup that produced a value (which may itself be None)."""
    value: V


class _Absent:
    """Marker for a tier lookup that produced nothing."""

    _instance = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()

Lookup = Union[Found[V], _Absent]


# === Tier Configuration ===

@dataclass(frozen=True)
class TierConfig:
    """Configuration of the local (in-process) tier."""
    max_entries: int
    ttl_ms: int


@dataclass(frozen=True)
class RemoteTierConfig:
    """Configuration of the remote (shared) tier.

    `to_transport` converts a value into something JSON can encode before it
    is stored; `from_transport` reverses it after retrieval. Either hook may
    return an awaitable.
    """
    max_entries: int
    ttl_ms: int
    command_timeout_ms: int
    to_transport: Callable[[Any], Any] = field(default=_identity, compare=False)
    from_transport: Callable[[Any], Any] = field(default=_identity, compare=False)


@dataclass(frozen=True)
class CacheDefaults:
    """The lowest configuration layer, shared by every wrapped function."""
    local: TierConfig = TierConfig(max_entries=1000, ttl_ms=60 * 1000)
    remote: RemoteTierConfig = RemoteTierConfig(
        max_entries=10000,
        ttl_ms=5 * 60 * 1000,
        command_timeout_ms=50,
    )
    wait_for_refresh: bool = False
    single_flight: bool = True


@dataclass(frozen=True)
class WrapConfig:
    """Fully resolved configuration of one wrapped function."""
    function_id: FunctionId
    local: TierConfig
    remote: RemoteTierConfig
    wait_for_refresh: bool = False
    single_flight: bool = True

    @property
    def refresh_threshold_ms(self) -> int:
        """Remaining remote TTL below which an entry is refreshed ahead."""
        return self.remote.ttl_ms - self.local.ttl_ms


# Built once at import; passed explicitly into the resolver.
DEFAULT_CONFIG = CacheDefaults()
