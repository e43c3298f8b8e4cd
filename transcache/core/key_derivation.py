"""Cache key derivation.

A key is the wrapped function's identifier followed by a canonical JSON
encoding of the call arguments. Mapping keys are sorted, so structurally
equal arguments always produce the same key.

Values JSON cannot represent directly are encoded as single-entry tagged
objects, e.g. `{"__set__": [...]}` or `{"__enum__": ["pkg.Color", "red"]}`.
A plain mapping that looks like such a tag is itself wrapped in
`{"__dict__": ...}`, and mappings with non-string keys become
`{"__map__": [[key, value], ...]}`. Distinct arguments therefore never share
a key: `{1: "x"}` and `{"1": "x"}`, or `{1, 2}` and `["1", "2"]`, differ.
"""

import dataclasses
import datetime
import decimal
import enum
import json
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from transcache.domain.exceptions import KeyDerivationError, MissingFunctionIdError
from transcache.domain.models.common import CacheKey, FunctionId

_TAGS = frozenset({
    "__dict__",
    "__map__",
    "__set__",
    "__dataclass__",
    "__enum__",
    "__datetime__",
    "__date__",
    "__time__",
    "__decimal__",
    "__uuid__",
})


def _type_name(value: Any) -> str:
    cls = type(value)
    return f"{cls.__module__}.{cls.__qualname__}"


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _sorted_items(items: List[Any]) -> List[Any]:
    return sorted(items, key=_dumps)


def _canonical_mapping(value: Dict[Any, Any]) -> Any:
    if all(isinstance(k, str) for k in value):
        encoded = {k: _canonical(v) for k, v in value.items()}
        if len(encoded) == 1 and next(iter(encoded)) in _TAGS:
            return {"__dict__": encoded}
        return encoded
    pairs = [[_canonical(k), _canonical(v)] for k, v in value.items()]
    return {"__map__": _sorted_items(pairs)}


def _canonical(value: Any) -> Any:
    """Converts `value` into plain JSON data without losing its type."""
    if value is None or (isinstance(value, (str, bool, int, float)) and not isinstance(value, enum.Enum)):
        return value
    if isinstance(value, (list, tuple)):
        return [_canonical(item) for item in value]
    if isinstance(value, dict):
        return _canonical_mapping(value)
    if isinstance(value, (set, frozenset)):
        return {"__set__": _sorted_items([_canonical(item) for item in value])}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: _canonical(getattr(value, f.name)) for f in dataclasses.fields(value)}
        return {"__dataclass__": [_type_name(value), fields]}
    if isinstance(value, enum.Enum):
        return {"__enum__": [_type_name(value), _canonical(value.value)]}
    # datetime is a date subclass
    if isinstance(value, datetime.datetime):
        return {"__datetime__": value.isoformat()}
    if isinstance(value, datetime.date):
        return {"__date__": value.isoformat()}
    if isinstance(value, datetime.time):
        return {"__time__": value.isoformat()}
    if isinstance(value, decimal.Decimal):
        return {"__decimal__": str(value)}
    if isinstance(value, uuid.UUID):
        return {"__uuid__": str(value)}
    raise KeyDerivationError(f"Cannot derive a cache key from argument of type {type(value).__name__}")


def canonical_serialize(value: Any) -> str:
    """Encodes `value` as compact JSON with sorted mapping keys.

    Raises:
        KeyDerivationError: If `value` contains an unsupported type or a
            reference cycle.
    """
    try:
        return _dumps(_canonical(value))
    except RecursionError as e:
        raise KeyDerivationError("Cannot derive a cache key from a self-referencing argument") from e


def derive_key(function_id: FunctionId, args: Tuple[Any, ...], kwargs: Optional[Dict[str, Any]] = None) -> CacheKey:
    """Builds the cache key of one call."""
    key = function_id + canonical_serialize(list(args))
    if kwargs:
        key += canonical_serialize(kwargs)
    return CacheKey(key)


def resolve_function_id(func: Callable[..., Any], function_id: Optional[str] = None) -> FunctionId:
    """Returns the explicit identifier, or one derived from the function's name.

    Raises:
        MissingFunctionIdError: If no explicit id is given and the function is
            anonymous (a lambda, a partial, a callable without a name).
    """
    if isinstance(function_id, str) and function_id:
        return FunctionId(function_id)

    name = getattr(func, "__qualname__", None) or getattr(func, "__name__", None)
    if not isinstance(name, str) or not name or "<lambda>" in name:
        raise MissingFunctionIdError(func)

    module = getattr(func, "__module__", None)
    return FunctionId(f"{module}.{name}" if module else name)
