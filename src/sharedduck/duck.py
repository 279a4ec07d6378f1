"""Reducer-driven state container with callable action tables.

A ``Duck`` wraps a state container with a fixed table of pure reducers and
exposes two action tables:

- ``origin_actions``: synchronous; applies the local reducer, notifies the
  action listeners and returns the arguments.
- ``actions``: the public table. It is ``origin_actions`` itself unless an
  ``action_rewrite`` hook is configured, in which case every call goes
  through the hook and returns an awaitable.

Examples
--------
>>> duck = Duck(
...     {"theme": "light"},
...     {"set_theme": lambda state, theme: {**state, "theme": theme}},
... )
>>> duck.actions.set_theme("dark")
('dark',)
>>> duck.state
{'theme': 'dark'}
"""

from __future__ import annotations

import copy
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from sharedduck.errors import UnknownActionError
from sharedduck.gate import ReadinessGate
from sharedduck.store import StateContainer, StateListener, Store, Unsubscribe

type Reducer[S] = Callable[..., S]
type ActionListener = Callable[..., None]
type OriginAction = Callable[..., tuple[Any, ...]]
type Action = Callable[..., Awaitable[Any]]
type ActionRewrite = Callable[[ActionCall, OriginAction], Any]
type Resolve[S] = Callable[[Duck[S]], None]
type Initialize[S] = Callable[[Duck[S], Resolve[S]], None]

RESET_ACTION = "reset"


@dataclass(frozen=True)
class ActionCall:
    """An action invocation handed to an ``action_rewrite`` hook.

    Parameters
    ----------
    action : str
        Action name.
    payload : tuple[Any, ...]
        Positional arguments the action was called with.
    """

    action: str
    payload: tuple[Any, ...]


class _ActionTable[F](Mapping[str, F]):
    __slots__ = ("_actions",)

    def __init__(self, actions: Mapping[str, F]) -> None:
        self._actions = dict(actions)

    def __getitem__(self, action: str) -> F:
        try:
            return self._actions[action]
        except KeyError:
            raise UnknownActionError(action) from None

    def __getattr__(self, action: str) -> F:
        if action.startswith("_"):
            raise AttributeError(action)
        try:
            return self[action]
        except UnknownActionError as exc:
            raise AttributeError(str(exc)) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({sorted(self._actions)})"


class OriginActions(_ActionTable[OriginAction]):
    """Synchronous action table: each call applies the reducer locally.

    Actions are reachable by item (``table["set_theme"]``) or attribute
    (``table.set_theme``). Names that collide with ``Mapping`` methods
    (``get``, ``keys``...) are only reachable by item.
    """


class Actions(_ActionTable[Action]):
    """Public action table of a duck with an ``action_rewrite`` hook.

    Each call runs the hook immediately and returns an awaitable for its
    result.
    """


@dataclass(eq=False)
class _ListenerRecord:
    action: str
    listener: ActionListener


class Duck[S]:
    """State container driven by named reducers.

    Parameters
    ----------
    state : S
        Initial state. ``reset`` restores a shallow copy of it.
    reducers : Mapping[str, Reducer[S]]
        Pure functions ``(state, *args) -> state`` keyed by action name.
    initialize : Initialize[S] | None
        Called once at the end of construction with ``(duck, resolve)``; it
        must call ``resolve(duck)`` when the duck is usable. Without it the
        duck is ready immediately.
    action_rewrite : ActionRewrite | None
        Hook ``(ActionCall, origin) -> result`` substituted for every public
        action. A result that is not awaitable is wrapped in a resolved gate.
    name : str | None
        Logical name, used for logging.
    store : StateContainer[S] | None
        Container to wrap. Defaults to a new ``Store`` holding a shallow
        copy of *state*.

    Examples
    --------
    >>> duck = Duck({"count": 0}, {"add": lambda s, n: {"count": s["count"] + n}})
    >>> duck.origin_actions.add(2)
    (2,)
    >>> duck.actions.reset()
    ()
    >>> duck.state
    {'count': 0}
    """

    def __init__(
        self,
        state: S,
        reducers: Mapping[str, Reducer[S]],
        *,
        initialize: Initialize[S] | None = None,
        action_rewrite: ActionRewrite | None = None,
        name: str | None = None,
        store: StateContainer[S] | None = None,
    ) -> None:
        self._name = name
        self._initial = state
        self._store: StateContainer[S] = store if store is not None else Store(copy.copy(state))
        self._listeners: list[_ListenerRecord] = []
        self._ready: ReadinessGate[Duck[S]] = ReadinessGate()
        self._logger = logging.getLogger(f"sharedduck.duck.{name or 'anonymous'}")

        table: dict[str, Reducer[S]] = {RESET_ACTION: self._reset, **reducers}
        self._origin_actions = OriginActions(
            {action: self._origin(action, reducer) for action, reducer in table.items()}
        )
        self._actions: OriginActions | Actions
        if action_rewrite is None:
            self._actions = self._origin_actions
        else:
            self._actions = Actions(
                {
                    action: self._rewritten(action, origin, action_rewrite)
                    for action, origin in self._origin_actions.items()
                }
            )

        if initialize is None:
            self._ready.resolve(self)
        else:
            initialize(self, self._resolve_ready)

    @property
    def name(self) -> str | None:
        return self._name

    # --- state container ---

    @property
    def state(self) -> S:
        return self._store.state

    def set_state(self, state: S) -> None:
        """Replace the whole state and notify subscribers."""
        self._store.set_state(state)

    def subscribe(self, listener: StateListener[S]) -> Unsubscribe:
        """Register ``listener(state, previous)`` for state replacements."""
        return self._store.subscribe(listener)

    # --- actions ---

    @property
    def origin_actions(self) -> OriginActions:
        return self._origin_actions

    @property
    def actions(self) -> OriginActions | Actions:
        return self._actions

    def on_action(self, action: str, listener: ActionListener) -> Unsubscribe:
        """Call *listener* with the action's arguments after each application.

        Registering the same callable twice creates two independent
        registrations; each returned remover only removes its own.

        Parameters
        ----------
        action : str
            Action name to listen to.
        listener : ActionListener
            Called as ``listener(*args)`` once the new state is visible.

        Returns
        -------
        Unsubscribe
            Idempotent remover.

        Raises
        ------
        UnknownActionError
            If the duck has no such action.
        """
        if action not in self._origin_actions:
            raise UnknownActionError(action)
        record = _ListenerRecord(action, listener)
        self._listeners.append(record)

        def unsubscribe() -> None:
            for index, item in enumerate(self._listeners):
                if item is record:
                    del self._listeners[index]
                    return

        return unsubscribe

    # --- readiness ---

    def ready(self) -> ReadinessGate[Duck[S]]:
        """Return the gate resolved once the duck is usable."""
        return self._ready

    @property
    def is_ready(self) -> bool:
        return self._ready.done

    async def wait(self, predicate: Callable[[S], bool]) -> Duck[S]:
        """Wait until the duck is ready and *predicate* holds on its state.

        There is no timeout; wrap the call in ``asyncio.wait_for`` to bound it.

        Examples
        --------
        >>> await duck.wait(lambda state: state["theme"] == "dark")
        """
        await self._ready
        if predicate(self.state):
            return self

        matched: ReadinessGate[Duck[S]] = ReadinessGate()

        def check(state: S, previous: S) -> None:
            if predicate(state):
                unsubscribe()
                matched.resolve(self)

        unsubscribe = self.subscribe(check)
        try:
            return await matched
        finally:
            unsubscribe()

    # --- internals ---

    def _reset(self, state: S) -> S:
        return copy.copy(self._initial)

    def _resolve_ready(self, duck: Duck[S]) -> None:
        if self._ready.resolve(duck):
            self._logger.debug("Ready")

    def _origin(self, action: str, reducer: Reducer[S]) -> OriginAction:
        def origin(*args: Any) -> tuple[Any, ...]:
            self._store.set_state(reducer(self._store.state, *args))
            for record in list(self._listeners):
                if record.action == action:
                    record.listener(*args)
            return args

        origin.__name__ = action
        return origin

    def _rewritten(self, action: str, origin: OriginAction, rewrite: ActionRewrite) -> Action:
        def dispatch(*args: Any) -> Awaitable[Any]:
            result = rewrite(ActionCall(action=action, payload=args), origin)
            if inspect.isawaitable(result):
                return result
            return ReadinessGate.resolved(result)

        dispatch.__name__ = action
        return dispatch

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, state={self.state!r})"
