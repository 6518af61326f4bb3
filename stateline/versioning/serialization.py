"""
Copying and serialization helpers for JSON-like state trees.

All captured states (snapshots, history entries, transaction snapshots) go
through ``deep_clone`` so that nothing held by stateline aliases the caller's
live state. ``JsonSerializer`` is the default text codec and the basis of
canonical equality used by the differ.
"""

import copy
import json
import time
from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional, Protocol

CIRCULAR_MARKER = "[Circular]"

Clock = Callable[[], float]

default_clock: Clock = time.time


class Serializer(Protocol):
    """Text codec used for export/import and canonical comparisons."""

    def serialize(self, value: Any) -> str: ...

    def deserialize(self, text: str) -> Any: ...


def deep_clone(value: Any, _memo: Optional[Dict[int, Any]] = None) -> Any:
    """
    Return a structurally independent copy of a JSON-like value.

    Mappings become dicts, lists/tuples/sets keep their container type and
    primitives are returned as-is. Shared or cyclic sub-objects are cloned
    once and re-used, mirroring ``copy.deepcopy``.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value

    if _memo is None:
        _memo = {}
    key = id(value)
    if key in _memo:
        return _memo[key]

    if isinstance(value, Mapping):
        cloned: Dict[Any, Any] = {}
        _memo[key] = cloned
        for k, v in value.items():
            cloned[k] = deep_clone(v, _memo)
        return cloned

    if isinstance(value, list):
        cloned_list: list = []
        _memo[key] = cloned_list
        cloned_list.extend(deep_clone(item, _memo) for item in value)
        return cloned_list

    if isinstance(value, tuple):
        cloned_tuple = tuple(deep_clone(item, _memo) for item in value)
        _memo[key] = cloned_tuple
        return cloned_tuple

    if isinstance(value, (set, frozenset)):
        cloned_set = type(value)(deep_clone(item, _memo) for item in value)
        _memo[key] = cloned_set
        return cloned_set

    # Opaque host objects are outside the JSON-like scope
    cloned_obj = copy.deepcopy(value)
    _memo[key] = cloned_obj
    return cloned_obj


def to_jsonable(value: Any, _seen: Optional[set] = None) -> Any:
    """
    Convert ``value`` into something ``json.dumps`` accepts.

    Cycles are replaced by ``CIRCULAR_MARKER`` instead of failing. Sets are
    emitted as sorted lists, unknown objects as their ``repr``.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value

    if _seen is None:
        _seen = set()
    key = id(value)
    if key in _seen:
        return CIRCULAR_MARKER

    _seen.add(key)
    try:
        if isinstance(value, Mapping):
            return {str(k): to_jsonable(v, _seen) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [to_jsonable(item, _seen) for item in value]
        if isinstance(value, (set, frozenset)):
            items = [to_jsonable(item, _seen) for item in value]
            return sorted(items, key=lambda item: json.dumps(item, sort_keys=True))
        return repr(value)
    finally:
        _seen.discard(key)


class JsonSerializer:
    """Default serializer: stable (sorted-key) JSON with a cycle guard."""

    def __init__(self, indent: Optional[int] = None):
        self.indent = indent

    def serialize(self, value: Any) -> str:
        return json.dumps(to_jsonable(value), sort_keys=True, indent=self.indent)

    def deserialize(self, text: str) -> Any:
        return json.loads(text)


_canonical = JsonSerializer()


def canonical_equal(first: Any, second: Any) -> bool:
    """Compare two values by their stable serialization."""
    if first is second:
        return True
    return _canonical.serialize(first) == _canonical.serialize(second)


def serialized_size(value: Any, serializer: Optional[Serializer] = None) -> int:
    """Size in bytes of the serialized form of ``value``."""
    text = (serializer or _canonical).serialize(value)
    return len(text.encode("utf-8"))
