"""Multiplexing independent shared ducks over one port by channel name.

``Channels`` is a small membership registry: it knows the default channel
and tells its listeners when a channel is added or removed.
``share_with_channels`` builds a ``ChannelStores`` on top of it, which
creates one endpoint per channel on first use and discards it on removal.

Examples
--------
>>> channels = Channels()
>>> stores = share_with_channels(
...     channels,
...     lambda channel: SharedDuck("theme", port, state, reducers, channel=channel, channels=channels),
... )
>>> stores.default().state
{'theme': 'light'}
>>> stores.channel("window-2").state
{'theme': 'light'}
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Literal, Protocol

from sharedduck.messages import DEFAULT_CHANNEL

if TYPE_CHECKING:
    from sharedduck.config import SharedDuckConfig
    from sharedduck.store import Unsubscribe

logger = logging.getLogger("sharedduck.channels")

type ChannelEvent = Literal["add", "remove"]
type ChannelListener = Callable[[str, ChannelEvent], None]


class Channels:
    """Registry of channel membership changes.

    Parameters
    ----------
    default : str
        Name of the default channel.

    Examples
    --------
    >>> channels = Channels(default="main")
    >>> events = []
    >>> unsubscribe = channels.subscribe(lambda channel, event: events.append((channel, event)))
    >>> channels.notify("window-2", "add")
    >>> events
    [('window-2', 'add')]
    """

    def __init__(self, default: str = DEFAULT_CHANNEL) -> None:
        self._default = default
        self._listeners: list[ChannelListener] = []

    @classmethod
    def from_config(cls, config: SharedDuckConfig) -> Channels:
        return cls(default=config.channels.default)

    @property
    def default(self) -> str:
        return self._default

    @default.setter
    def default(self, channel: str) -> None:
        self._default = channel

    def notify(self, channel: str, event: ChannelEvent) -> None:
        """Call every listener with ``(channel, event)``, synchronously."""
        logger.debug("Channel %r: %s", channel, event)
        for listener in list(self._listeners):
            listener(channel, event)

    def subscribe(self, listener: ChannelListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self._listeners = [item for item in self._listeners if item is not listener]

        return unsubscribe


class Closeable(Protocol):
    def close(self) -> None: ...


class ChannelStores[D: Closeable]:
    """Endpoints for every active channel, created on demand.

    Built by ``share_with_channels``. ``default()`` returns the endpoint of
    the default channel and ``channel(name)`` the endpoint of any channel,
    creating it with the factory if needed.

    Parameters
    ----------
    channels : Channels
        Registry whose ``"add"``/``"remove"`` notifications drive creation
        and disposal.
    factory : Callable[[str], D]
        Builds the endpoint for a channel name.
    """

    def __init__(self, channels: Channels, factory: Callable[[str], D]) -> None:
        self._channels = channels
        self._factory = factory
        self._stores: dict[str, D] = {}
        self._unsubscribe: Unsubscribe | None = channels.subscribe(self._on_channel_event)

    @property
    def registry(self) -> Channels:
        return self._channels

    def default(self) -> D:
        """Return the endpoint of the default channel."""
        return self.channel(self._channels.default)

    def channel(self, name: str) -> D:
        """Return the endpoint of channel *name*, creating it if absent."""
        store = self._stores.get(name)
        if store is None:
            store = self._factory(name)
            self._stores[name] = store
            logger.info("Channel %r created", name)
        return store

    def channels(self) -> list[str]:
        """Names of the channels with a live endpoint."""
        return list(self._stores)

    def close(self) -> None:
        """Close every endpoint and stop following the registry."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        stores, self._stores = self._stores, {}
        for store in stores.values():
            store.close()

    def _on_channel_event(self, channel: str, event: ChannelEvent) -> None:
        match event:
            case "add":
                self.channel(channel)
            case "remove":
                if self._stores.pop(channel, None) is not None:
                    logger.info("Channel %r removed", channel)

    def __contains__(self, name: object) -> bool:
        return name in self._stores

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._stores))

    def __len__(self) -> int:
        return len(self._stores)


def share_with_channels[D: Closeable](
    channels: Channels, factory: Callable[[str], D]
) -> ChannelStores[D]:
    """Create a ``ChannelStores`` and its default-channel endpoint.

    The default endpoint is created eagerly so that it starts listening on
    the port right away (a master needs it to answer registrations).

    Parameters
    ----------
    channels : Channels
        Channel registry.
    factory : Callable[[str], D]
        Builds the endpoint for a channel name, typically a ``SharedDuck``
        created with ``channel=name, channels=channels``.

    Returns
    -------
    ChannelStores[D]
    """
    stores = ChannelStores(channels, factory)
    stores.default()
    return stores
