"""Minimal mutable state container.

``Duck`` only needs four primitives from the container it wraps: read the
current state, replace it, subscribe to changes and unsubscribe. Any object
satisfying ``StateContainer`` can be plugged in; ``Store`` is the default.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

type StateListener[S] = Callable[[S, S], None]
type Unsubscribe = Callable[[], None]


@runtime_checkable
class StateContainer[S](Protocol):
    """Protocol for the state container wrapped by ``Duck``.

    Examples
    --------
    >>> isinstance(Store({"theme": "light"}), StateContainer)
    True
    """

    @property
    def state(self) -> S: ...

    def set_state(self, state: S) -> None:
        """Replace the whole state and notify subscribers."""
        ...

    def subscribe(self, listener: StateListener[S]) -> Unsubscribe:
        """Register ``listener(state, previous)`` and return its remover."""
        ...


class Store[S]:
    """Holds a single state value and notifies subscribers on replacement.

    Parameters
    ----------
    state : S
        Initial state.

    Examples
    --------
    >>> store = Store({"theme": "light"})
    >>> seen = []
    >>> unsubscribe = store.subscribe(lambda state, previous: seen.append(state))
    >>> store.set_state({"theme": "dark"})
    >>> seen
    [{'theme': 'dark'}]
    >>> unsubscribe()
    """

    def __init__(self, state: S) -> None:
        self._state = state
        self._listeners: list[StateListener[S]] = []

    @property
    def state(self) -> S:
        return self._state

    def set_state(self, state: S) -> None:
        previous = self._state
        self._state = state
        for listener in list(self._listeners):
            listener(state, previous)

    def subscribe(self, listener: StateListener[S]) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
