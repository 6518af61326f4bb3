"""
State providers.

A provider is the seam between stateline and whatever owns the live state
tree: ``get()`` reads it and ``apply(new_state)`` replaces it.
"""

from collections.abc import MutableMapping
from typing import Any, Callable, Optional, Protocol, runtime_checkable


@runtime_checkable
class StateProvider(Protocol):
    """Read/replace access to a live state tree."""

    def get(self) -> Any: ...

    def apply(self, new_state: Any) -> None: ...


class DictStateProvider:
    """
    Provider over a plain mutable mapping.

    ``apply`` replaces the contents in place, so references to ``state`` held
    elsewhere observe restores.

    Example:
        >>> state = {"count": 0}
        >>> provider = DictStateProvider(state)
        >>> provider.apply({"count": 5})
        >>> state
        {'count': 5}
    """

    def __init__(self, state: Optional[MutableMapping] = None):
        self.state: MutableMapping = state if state is not None else {}

    def get(self) -> MutableMapping:
        return self.state

    def apply(self, new_state: Any) -> None:
        self.state.clear()
        self.state.update(new_state or {})


class CallbackStateProvider:
    """Provider built from a getter and an applier."""

    def __init__(self, get: Callable[[], Any], apply: Callable[[Any], None]):
        self._get = get
        self._apply = apply

    def get(self) -> Any:
        return self._get()

    def apply(self, new_state: Any) -> None:
        self._apply(new_state)


def as_provider(source: Any) -> StateProvider:
    """
    Wrap ``source`` as a provider.

    Providers are returned unchanged and mutable mappings are wrapped in a
    ``DictStateProvider``.

    Raises:
        TypeError: If ``source`` is neither
    """
    if isinstance(source, StateProvider):
        return source
    if isinstance(source, MutableMapping):
        return DictStateProvider(source)
    raise TypeError(f"Cannot use {type(source).__name__} as a state provider")
