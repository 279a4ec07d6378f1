"""Test utilities for sharedduck tests."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any


async def settle(iterations: int = 20) -> None:
    """Let the event loop run pending callbacks (port deliveries)."""
    for _ in range(iterations):
        await asyncio.sleep(0)


async def retry_until(
    condition: Callable[[], bool | Awaitable[bool]],
    *,
    timeout: float = 2.0,
    interval: float = 0.01,
    message: str = "Condition not met within timeout",
) -> None:
    """Wait until a condition is met, with timeout.

    Args:
        condition: A callable that returns True when the condition is met
        timeout: Maximum time to wait in seconds
        interval: Time between checks in seconds
        message: Error message if timeout is reached

    Raises:
        TimeoutError: If condition is not met within timeout

    Example:
        await retry_until(
            lambda: master.mirrors == {"replica-1"},
            message="Replica never registered",
        )
    """
    start = time.time()
    while time.time() - start < timeout:
        result = condition()

        if asyncio.iscoroutine(result):
            result = await result

        if result:
            return

        await asyncio.sleep(interval)
    raise TimeoutError(message)


# Reducers


def set_theme(state: dict[str, Any], theme: str) -> dict[str, Any]:
    return {**state, "theme": theme}


def append(state: dict[str, Any], item: Any) -> dict[str, Any]:
    return {**state, "log": [*state["log"], item]}


THEME_REDUCERS = {"set_theme": set_theme}
LOG_REDUCERS = {"append": append}
