"""Merges configuration layers and validates the result.

Layers, in increasing precedence:
1. `CacheDefaults` (normally `DEFAULT_CONFIG`)
2. Constructor-level overrides given to `TransparentCache`
3. Wrap-level overrides given to `TransparentCache.wrap`

Overrides are plain mappings, e.g.
`{"local": {"ttl_ms": 1000}, "remote": {"command_timeout_ms": 20}, "wait_for_refresh": True}`.
Every merge is validated, so a bad configuration fails when the cache or the
wrapped function is built, never on a call.
"""

from dataclasses import fields, replace
import logging
from typing import Any, Mapping, Optional

from transcache.domain.exceptions import ConfigurationError
from transcache.domain.models.common import (
    DEFAULT_CONFIG,
    CacheDefaults,
    FunctionId,
    RemoteTierConfig,
    TierConfig,
    WrapConfig,
)

logger = logging.getLogger(__name__)

_SECTION_KEYS = {
    "local": frozenset(f.name for f in fields(TierConfig)),
    "remote": frozenset(f.name for f in fields(RemoteTierConfig)),
}
_FLAG_KEYS = frozenset({"wait_for_refresh", "single_flight"})
_TOP_LEVEL_KEYS = frozenset(_SECTION_KEYS) | _FLAG_KEYS


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(local: TierConfig, remote: RemoteTierConfig) -> None:
    """Checks the tier invariants.

    Raises:
        ConfigurationError: On the first violated invariant.
    """
    for section, config in (("local", local), ("remote", remote)):
        if not _is_int(config.ttl_ms) or config.ttl_ms <= 0:
            raise ConfigurationError(f"{section}.ttl_ms must be an int gt 0, got {config.ttl_ms!r}")
        if not _is_int(config.max_entries) or config.max_entries <= 0:
            raise ConfigurationError(f"{section}.max_entries must be an int gt 0, got {config.max_entries!r}")

    if remote.ttl_ms < local.ttl_ms:
        raise ConfigurationError(
            f"remote.ttl_ms must be gte local.ttl_ms ({remote.ttl_ms} < {local.ttl_ms})"
        )
    if not _is_int(remote.command_timeout_ms) or remote.command_timeout_ms <= 0:
        raise ConfigurationError(
            f"remote.command_timeout_ms must be an int gt 0, got {remote.command_timeout_ms!r}"
        )
    if not callable(remote.to_transport) or not callable(remote.from_transport):
        raise ConfigurationError("remote.to_transport and remote.from_transport must be callable")


def _check_mapping(name: str, value: Any) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{name} config must be a mapping, got {type(value).__name__}")
    return value


def merge_layer(base: CacheDefaults, overrides: Optional[Mapping[str, Any]], clamp_local_ttl: bool = False) -> CacheDefaults:
    """Applies one override layer on top of `base` and validates the result.

    Args:
        base: The layer being overridden.
        overrides: Override mapping (may be None).
        clamp_local_ttl: When True, an override that lowers only the remote
            TTL below the inherited local TTL clamps the local TTL down to
            it instead of failing. Explicitly conflicting TTLs still fail.

    Returns:
        The merged layer.

    Raises:
        ConfigurationError: On unknown keys, wrong types or violated invariants.
    """
    overrides = _check_mapping("override", overrides)
    unknown = set(overrides) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")

    sections = {}
    for section, allowed in _SECTION_KEYS.items():
        section_overrides = _check_mapping(section, overrides.get(section))
        unknown = set(section_overrides) - allowed
        if unknown:
            raise ConfigurationError(f"Unknown {section} configuration keys: {sorted(unknown)}")
        sections[section] = replace(getattr(base, section), **section_overrides)

    local, remote = sections["local"], sections["remote"]
    local_ttl_given = "ttl_ms" in _check_mapping("local", overrides.get("local"))
    if (
        clamp_local_ttl
        and not local_ttl_given
        and _is_int(remote.ttl_ms)
        and _is_int(local.ttl_ms)
        and remote.ttl_ms < local.ttl_ms
    ):
        logger.debug(f"Clamping local.ttl_ms {local.ttl_ms} to remote.ttl_ms {remote.ttl_ms}")
        local = replace(local, ttl_ms=remote.ttl_ms)

    flags = {}
    for flag in _FLAG_KEYS:
        value = overrides.get(flag, getattr(base, flag))
        if not isinstance(value, bool):
            raise ConfigurationError(f"{flag} must be a bool, got {value!r}")
        flags[flag] = value

    validate_config(local, remote)
    return CacheDefaults(local=local, remote=remote, **flags)


class ConfigurationResolver:
    """Holds the constructor-level configuration and resolves wrap configs."""

    def __init__(self, defaults: CacheDefaults = DEFAULT_CONFIG, overrides: Optional[Mapping[str, Any]] = None):
        """Merges constructor-level `overrides` over `defaults`.

        Raises:
            ConfigurationError: If the merged configuration is invalid.
        """
        self.defaults = defaults
        self.base = merge_layer(defaults, overrides)

    def resolve(self, function_id: FunctionId, overrides: Optional[Mapping[str, Any]] = None) -> WrapConfig:
        """Builds the frozen configuration of one wrapped function.

        Raises:
            ConfigurationError: If the wrap-level overrides are invalid.
        """
        merged = merge_layer(self.base, overrides, clamp_local_ttl=True)
        return WrapConfig(
            function_id=function_id,
            local=merged.local,
            remote=merged.remote,
            wait_for_refresh=merged.wait_for_refresh,
            single_flight=merged.single_flight,
        )
