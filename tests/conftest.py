"""Shared fixtures for sharedduck tests."""

from __future__ import annotations

from typing import Any

import pytest

from sharedduck import PortHub, serializer_for


@pytest.fixture
def theme_state() -> dict[str, Any]:
    return {"theme": "light"}


@pytest.fixture(params=["none", "json", "msgpack"])
def hub(request: pytest.FixtureRequest) -> PortHub:
    """A port hub, once per serializer so state really crosses a codec."""
    return PortHub(serializer=serializer_for(request.param))
