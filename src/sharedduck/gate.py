"""Single-resolution awaitable used for readiness and action completion.

``ReadinessGate`` resolves exactly once. Waiters registered before or after
resolution all observe the same value. Unlike ``asyncio.Future`` it can be
created and resolved outside a running event loop; a loop is only needed by
the code that awaits it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from typing import Any


class ReadinessGate[T]:
    """Awaitable that is resolved once and then stays resolved.

    Examples
    --------
    >>> gate: ReadinessGate[int] = ReadinessGate()
    >>> gate.resolve(42)
    True
    >>> gate.resolve(7)
    False
    >>> await gate
    42
    """

    __slots__ = ("_resolved", "_value", "_waiters")

    def __init__(self) -> None:
        self._resolved = False
        self._value: T | None = None
        self._waiters: list[asyncio.Future[T]] = []

    @classmethod
    def resolved(cls, value: T) -> ReadinessGate[T]:
        """Return a gate that is already resolved with *value*.

        Examples
        --------
        >>> await ReadinessGate.resolved("done")
        'done'
        """
        gate: ReadinessGate[T] = cls()
        gate.resolve(value)
        return gate

    @property
    def done(self) -> bool:
        """``True`` once ``resolve()`` has been called."""
        return self._resolved

    def result(self) -> T:
        """Return the resolved value.

        Raises
        ------
        asyncio.InvalidStateError
            If the gate has not been resolved yet.
        """
        if not self._resolved:
            msg = "Gate is not resolved yet"
            raise asyncio.InvalidStateError(msg)
        return self._value  # type: ignore[return-value]

    def resolve(self, value: T) -> bool:
        """Resolve the gate with *value*.

        Only the first call has an effect; later calls return ``False``.

        Parameters
        ----------
        value : T
            Value delivered to every waiter.

        Returns
        -------
        bool
            ``True`` if this call resolved the gate.
        """
        if self._resolved:
            return False
        self._resolved = True
        self._value = value
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(value)
        return True

    async def wait(self) -> T:
        """Wait until the gate is resolved and return its value."""
        if self._resolved:
            return self._value  # type: ignore[return-value]
        waiter: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        return await waiter

    def __await__(self) -> Generator[Any, None, T]:
        return self.wait().__await__()

    def __repr__(self) -> str:
        if self._resolved:
            return f"ReadinessGate(resolved={self._value!r})"
        return "ReadinessGate(pending)"
