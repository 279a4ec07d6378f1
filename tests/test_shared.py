"""Tests for master/replica replication over a port hub.

Every endpoint lives in the same event loop here; the hub fixture runs each
test without a codec and through JSON and MessagePack to mimic separate
processes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

from sharedduck import (
    MASTER_PORT_ID,
    PortHub,
    PortConfig,
    Role,
    SharedDuck,
    SharedDuckConfig,
    Status,
    shared_duck,
)
from sharedduck.messages import Event, Message

from tests.utils import LOG_REDUCERS, THEME_REDUCERS, retry_until, settle


def theme_duck(hub: PortHub, port_id: str) -> SharedDuck[dict[str, Any]]:
    return SharedDuck("theme", hub.port(port_id), {"theme": "light"}, THEME_REDUCERS)


def log_duck(hub: PortHub, port_id: str) -> SharedDuck[dict[str, Any]]:
    return SharedDuck("log", hub.port(port_id), {"log": []}, LOG_REDUCERS)


async def ready(*ducks: SharedDuck[Any]) -> None:
    await asyncio.wait_for(asyncio.gather(*(d.ready().wait() for d in ducks)), timeout=2.0)


class TestRoles:
    async def test_role_follows_port_id(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        replica = theme_duck(hub, "replica")

        assert master.role is Role.MASTER
        assert master.is_master
        assert replica.role is Role.REPLICA

    async def test_custom_master_id_from_config(self, hub: PortHub) -> None:
        config = SharedDuckConfig(port=PortConfig(master_id="main"))
        master = shared_duck("theme", hub.port("main"), {"theme": "light"}, THEME_REDUCERS, config=config)
        replica = shared_duck("theme", hub.port("r"), {"theme": "light"}, THEME_REDUCERS, config=config)

        await ready(master, replica)
        await replica.actions.set_theme("dark")

        assert master.role is Role.MASTER
        assert master.state == {"theme": "dark"}

    def test_requires_running_loop(self) -> None:
        hub = PortHub()
        with pytest.raises(RuntimeError):
            theme_duck(hub, MASTER_PORT_ID)


class TestHydration:
    async def test_share_ready(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        await master.actions.set_theme("dark")

        replica = theme_duck(hub, "replica")
        assert replica.state == {"theme": "light"}
        assert replica.status is Status.CREATED

        await ready(replica)

        assert replica.state == {"theme": "dark"}
        assert replica.status is Status.READY
        assert master.mirrors == {"replica"}

    async def test_master_ready_after_handler_installed(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        assert not master.is_ready

        await ready(master)

        assert master.status is Status.READY

    async def test_replica_after_k_master_actions(self, hub: PortHub) -> None:
        master = log_duck(hub, MASTER_PORT_ID)
        for item in range(5):
            master.actions.append(item)

        replica = log_duck(hub, "replica")
        await ready(replica)

        assert replica.state == master.state == {"log": [0, 1, 2, 3, 4]}

    async def test_late_state_response_is_ignored(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        replica = theme_duck(hub, "replica")
        await ready(master, replica)

        hub.port("rogue").send(
            "replica",
            Message(MASTER_PORT_ID, Event.STATE_RESPONSE, "theme", data={"theme": "stale"}),
        )
        await settle()

        assert replica.state == {"theme": "light"}


class TestRoundTrip:
    async def test_replica_action(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        replica = theme_duck(hub, "replica")
        await ready(replica)
        assert replica.state["theme"] == "light"

        result = await replica.actions.set_theme("dark")

        assert result == ("dark",)
        assert master.state == {"theme": "dark"}
        assert replica.state == {"theme": "dark"}
        assert replica.pending_actions == 0

    async def test_replica_waits_for_master_relay(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        replica = theme_duck(hub, "replica")
        await ready(replica)

        pending = replica.actions.set_theme("dark")

        assert replica.state == {"theme": "light"}
        assert master.state == {"theme": "light"}
        assert await pending == ("dark",)
        assert replica.state == {"theme": "dark"}

    async def test_theme_scenario(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        await master.actions.set_theme("dark")

        replica = theme_duck(hub, "replica")
        await replica.ready()
        assert replica.state == {"theme": "dark"}

        await replica.actions.set_theme("light")

        assert master.state == {"theme": "light"}
        assert replica.state == {"theme": "light"}

    async def test_master_actions_reach_replicas(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        replica = theme_duck(hub, "replica")
        await ready(replica)
        seen: list[str] = []
        replica.on_action("set_theme", seen.append)

        await master.actions.set_theme("dark")
        await asyncio.wait_for(replica.wait(lambda s: s["theme"] == "dark"), timeout=2.0)

        assert seen == ["dark"]

    async def test_action_before_hydration(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        replica = theme_duck(hub, "replica")

        result = await asyncio.wait_for(replica.actions.set_theme("dark"), timeout=2.0)
        await ready(replica)

        assert result == ("dark",)
        assert replica.state == master.state == {"theme": "dark"}

    async def test_reset_is_replicated(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        replica = theme_duck(hub, "replica")
        await ready(replica)
        await replica.actions.set_theme("dark")

        await replica.actions.reset()

        assert master.state == replica.state == {"theme": "light"}


class TestSingleMasterOrder:
    async def test_relayed_action_applied_once_with_many_mirrors(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        replicas = [theme_duck(hub, f"replica-{i}") for i in range(3)]
        await ready(*replicas)
        applied: list[str] = []
        master.on_action("set_theme", applied.append)

        await replicas[0].actions.set_theme("dark")

        assert applied == ["dark"]
        assert master.mirrors == {"replica-0", "replica-1", "replica-2"}

    async def test_replicas_converge_on_master_order(self, hub: PortHub) -> None:
        master = log_duck(hub, MASTER_PORT_ID)
        replicas = [log_duck(hub, f"replica-{i}") for i in range(3)]
        await ready(master, *replicas)

        dispatches = [
            replica.actions.append(f"{replica.port.id}:{n}")
            for n in range(4)
            for replica in replicas
        ]
        for n in range(4):
            master.actions.append(f"master:{n}")
        await asyncio.wait_for(asyncio.gather(*dispatches), timeout=2.0)

        expected = len(replicas) * 4 + 4
        for replica in replicas:
            await asyncio.wait_for(
                replica.wait(lambda s: len(s["log"]) == expected), timeout=2.0
            )

        assert len(master.state["log"]) == expected
        for replica in replicas:
            assert replica.state == master.state

    async def test_replica_actions_keep_send_order(self, hub: PortHub) -> None:
        master = log_duck(hub, MASTER_PORT_ID)
        replica = log_duck(hub, "replica")
        await ready(replica)

        await asyncio.gather(*(replica.actions.append(n) for n in range(10)))

        assert master.state["log"] == list(range(10))
        assert replica.state["log"] == list(range(10))


class TestIsolationAndErrors:
    async def test_other_store_names_are_ignored(self, hub: PortHub) -> None:
        port = hub.port(MASTER_PORT_ID)
        theme = SharedDuck("theme", port, {"theme": "light"}, THEME_REDUCERS)
        other = SharedDuck("other", port, {"theme": "light"}, THEME_REDUCERS)
        replica = theme_duck(hub, "replica")
        await ready(replica)

        await replica.actions.set_theme("dark")

        assert theme.state == {"theme": "dark"}
        assert other.state == {"theme": "light"}
        assert other.mirrors == frozenset()

    async def test_unknown_action_is_dropped(
        self, hub: PortHub, caplog: pytest.LogCaptureFixture
    ) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        await ready(master)

        with caplog.at_level(logging.WARNING, logger="sharedduck.shared.theme"):
            hub.port("rogue").send(
                MASTER_PORT_ID,
                Message(
                    "rogue",
                    Event.FORWARD_MASTER,
                    "theme",
                    data={"id": "rogue_0", "action": "set_font", "payload": ["mono"]},
                ),
            )
            await settle()

        assert "Unknown action 'set_font'" in caplog.text
        assert master.state == {"theme": "light"}

    async def test_unmatched_correlation_id_is_ignored(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        replica = theme_duck(hub, "replica")
        await ready(master, replica)

        hub.port("rogue").send(
            "replica",
            Message(
                MASTER_PORT_ID,
                Event.FORWARD_REPLICA,
                "theme",
                data={"id": "someone-else_7", "action": "set_theme", "payload": ["dark"]},
            ),
        )
        await settle()

        assert replica.state == {"theme": "dark"}
        assert replica.pending_actions == 0


class TestClose:
    async def test_close_removes_mirror(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        leaving = theme_duck(hub, "leaving")
        staying = theme_duck(hub, "staying")
        await ready(leaving, staying)

        leaving.close()
        leaving.close()
        await retry_until(lambda: master.mirrors == {"staying"})

        await master.actions.set_theme("dark")
        await asyncio.wait_for(staying.wait(lambda s: s["theme"] == "dark"), timeout=2.0)
        await settle()

        assert leaving.status is Status.CLOSED
        assert leaving.state == {"theme": "light"}

    async def test_pending_actions_are_abandoned(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        replica = theme_duck(hub, "replica")
        await ready(replica)

        pending = replica.actions.set_theme("dark")
        replica.close()
        await settle()

        assert master.state == {"theme": "dark"}
        assert replica.state == {"theme": "light"}
        assert not pending.done
        assert replica.pending_actions == 0

    async def test_context_manager_closes(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        with theme_duck(hub, "replica") as replica:
            await ready(replica)
        await settle()

        assert replica.status is Status.CLOSED
        assert master.mirrors == frozenset()

    async def test_close_before_start_never_installs_handler(self, hub: PortHub) -> None:
        master = theme_duck(hub, MASTER_PORT_ID)
        replica = theme_duck(hub, "replica")
        replica.close()
        await settle()

        assert not replica.is_ready
        assert master.mirrors == frozenset()
