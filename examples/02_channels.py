"""One port, several independent channels created on demand."""

import asyncio

from sharedduck import MASTER_PORT_ID, Channels, PortHub, SharedDuck, share_with_channels
from sharedduck.port import Port


def increment(state: dict[str, int], amount: int) -> dict[str, int]:
    return {**state, "count": state["count"] + amount}


def counters(port: Port, default: str = ""):
    channels = Channels(default=default)
    return share_with_channels(
        channels,
        lambda channel: SharedDuck(
            "counter",
            port,
            {"count": 0},
            {"increment": increment},
            channel=channel,
            channels=channels,
        ),
    )


async def main() -> None:
    hub = PortHub()
    master = counters(hub.port(MASTER_PORT_ID))
    worker = counters(hub.port("worker"), default="jobs")
    jobs, metrics = worker.default(), worker.channel("metrics")
    await asyncio.gather(jobs.ready().wait(), metrics.ready().wait())

    await jobs.actions.increment(3)
    await metrics.actions.increment(10)

    for name in master.channels():
        print(f"master[{name!r}] = {master.channel(name).state}")

    master.registry.notify("metrics", "remove")
    print(f"channels after remove: {master.channels()}")


asyncio.run(main())
