"""Theme shared between a main window (master) and two child windows."""

import asyncio
import logging

from sharedduck import MASTER_PORT_ID, JsonSerializer, PortHub, SharedDuck


def set_theme(state: dict[str, str], theme: str) -> dict[str, str]:
    return {**state, "theme": theme}


def theme_store(hub: PortHub, port_id: str) -> SharedDuck[dict[str, str]]:
    return SharedDuck("theme", hub.port(port_id), {"theme": "light"}, {"set_theme": set_theme})


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    hub = PortHub(serializer=JsonSerializer())

    main_window = theme_store(hub, MASTER_PORT_ID)
    await main_window.actions.set_theme("dark")

    child_a = theme_store(hub, "child-a")
    child_b = theme_store(hub, "child-b")
    await asyncio.gather(child_a.ready().wait(), child_b.ready().wait())
    print(f"child-a hydrated: {child_a.state}")

    child_b.on_action("set_theme", lambda theme: print(f"child-b applied {theme}"))
    await child_a.actions.set_theme("light")
    await child_b.wait(lambda state: state["theme"] == "light")

    print(f"main: {main_window.state}, a: {child_a.state}, b: {child_b.state}")

    child_a.close()
    child_b.close()


asyncio.run(main())
