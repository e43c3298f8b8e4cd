"""Domain Events related to cache lookups, population and refresh.

Events are plain dataclasses. They are logged at debug level and handed to
an optional listener, which is how callers hook in metrics.
"""

from dataclasses import dataclass, field
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


@dataclass
class CacheHit(DomainEvent):
    """A value was served from a tier."""
    function_id: str
    key: str
    tier: str  # 'local' or 'remote'
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheMiss(DomainEvent):
    """Neither tier held a value; the wrapped function will be invoked."""
    function_id: str
    key: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class CachePopulated(DomainEvent):
    """Both tiers were written with a freshly computed value."""
    function_id: str
    key: str
    refreshed: bool = False
    timestamp: float = field(default_factory=time.time)


@dataclass
class RefreshScheduled(DomainEvent):
    """The entry is close to remote expiry and will be recomputed."""
    function_id: str
    key: str
    remaining_ttl_ms: Optional[int]
    timestamp: float = field(default_factory=time.time)


@dataclass
class RefreshFailed(DomainEvent):
    """A background refresh raised; the error was discarded."""
    function_id: str
    key: str
    error_type: str
    error_message: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class RemoteOperationFailed(DomainEvent):
    """A remote command timed out or errored and was treated as a miss/no-op."""
    operation: str  # 'get', 'set', 'delete', 'pttl'
    key: Optional[str]
    error_type: str
    error_message: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheDeleted(DomainEvent):
    """An entry was removed from both tiers on request."""
    function_id: str
    key: str
    timestamp: float = field(default_factory=time.time)


EventListener = Callable[[DomainEvent], None]


class EventDispatcher:
    """Logs events and forwards them to an optional listener."""

    def __init__(self, listener: Optional[EventListener] = None):
        self.listener = listener

    def dispatch(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
        if self.listener is None:
            return
        try:
            self.listener(event)
        except Exception as e:
            # A broken listener must not break a cache call
            logger.warning(f"Event listener failed on {type(event).__name__}: {e}", exc_info=True)
