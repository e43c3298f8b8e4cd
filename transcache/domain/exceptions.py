"""Exceptions raised by the cache layer.

Configuration problems are fatal and surface at construction or wrap time.
Remote-tier failures never surface here; they are absorbed by the fail-safe
envelope.
"""


class TranscacheError(Exception):
    """Base class for all errors raised by transcache."""


class ConfigurationError(TranscacheError, ValueError):
    """Raised when a cache or wrap configuration violates an invariant."""


class MissingRemoteConnectionError(ConfigurationError):
    """Raised when neither a Redis client nor a Redis config is supplied."""

    def __init__(self) -> None:
        super().__init__("Must provide a redis client or a redis client config")


class MissingFunctionIdError(ConfigurationError):
    """Raised when no usable function identifier can be derived."""

    def __init__(self, func: object):
        self.func = func
        super().__init__(f"function_id required for unnamed functions: {func!r}")


class KeyDerivationError(TranscacheError, TypeError):
    """Raised when call arguments cannot be canonically serialized."""
