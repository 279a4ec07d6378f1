"""Port abstraction and an in-process implementation.

A port is the only channel between execution contexts. Endpoints send
messages by destination port id and register handlers for the messages
addressed to their own id.

``PortHub`` connects any number of ``LocalPort`` instances living in the
same event loop. Delivery is asynchronous (scheduled on the loop) and FIFO
per destination, which is the delivery model the replication protocol
relies on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sharedduck.errors import ProtocolError
from sharedduck.messages import Message
from sharedduck.serialization import Serializer, serializer_for

if TYPE_CHECKING:
    from sharedduck.config import SharedDuckConfig

logger = logging.getLogger("sharedduck.port")

type MessageHandler = Callable[[Message], None]
type Unsubscribe = Callable[[], None]


@runtime_checkable
class Port(Protocol):
    """Protocol for an addressable message endpoint.

    Examples
    --------
    Minimal implementation:

    >>> class NullPort:
    ...     id = "nowhere"
    ...     def send(self, destination: str, message: Message) -> None:
    ...         pass  # discard all messages
    ...     def on_message(self, handler):
    ...         return lambda: None
    """

    @property
    def id(self) -> str: ...

    def send(self, destination: str, message: Message) -> None:
        """Send *message* to the port registered as *destination*.

        Fire-and-forget: no acknowledgement, no error if the destination
        does not exist.
        """
        ...

    def on_message(self, handler: MessageHandler) -> Unsubscribe:
        """Register a handler for incoming messages and return its remover."""
        ...


class LocalPort:
    """Port attached to a ``PortHub``.

    Created with ``PortHub.port()``; not meant to be instantiated directly.
    """

    def __init__(self, hub: PortHub, port_id: str) -> None:
        self._hub = hub
        self._id = port_id
        self._handlers: list[MessageHandler] = []
        self._closed = False

    @property
    def id(self) -> str:
        return self._id

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, destination: str, message: Message) -> None:
        self._hub.send(destination, message)

    def on_message(self, handler: MessageHandler) -> Unsubscribe:
        self._handlers.append(handler)
        self._hub.flush(self._id)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    @property
    def has_handlers(self) -> bool:
        return bool(self._handlers)

    def dispatch(self, message: Message) -> None:
        for handler in list(self._handlers):
            handler(message)

    def close(self) -> None:
        """Detach from the hub. Later messages for this id are dropped."""
        self._closed = True
        self._handlers.clear()
        self._hub.unregister(self._id)

    def __repr__(self) -> str:
        return f"LocalPort(id={self._id!r})"


class PortHub:
    """In-process message router connecting ``LocalPort`` instances.

    Messages to a port without handlers are buffered (up to
    ``max_pending_per_port``) until a handler registers. Messages to unknown
    or closed ports are dropped. With a ``serializer``, every message is
    encoded on send and decoded on delivery, so receivers never share
    objects with senders.

    Parameters
    ----------
    max_pending_per_port : int
        Maximum buffered messages per port before dropping. Default is 64.
    serializer : Serializer | None
        Codec applied to every message, or ``None`` to pass messages by
        reference.

    Examples
    --------
    >>> hub = PortHub()
    >>> master, replica = hub.port("master"), hub.port("replica-1")
    >>> unsubscribe = master.on_message(print)
    >>> replica.send("master", Message("replica-1", "state/request", "theme"))
    """

    def __init__(
        self,
        *,
        max_pending_per_port: int = 64,
        serializer: Serializer | None = None,
    ) -> None:
        self._ports: dict[str, LocalPort] = {}
        self._pending: dict[str, list[Message | bytes]] = {}
        self._max_pending_per_port = max_pending_per_port
        self._serializer = serializer

    @classmethod
    def from_config(cls, config: SharedDuckConfig) -> PortHub:
        """Build a hub from the ``[port]`` and ``[serialization]`` settings."""
        return cls(
            max_pending_per_port=config.port.max_pending_per_port,
            serializer=serializer_for(config.serialization.serializer),
        )

    def port(self, port_id: str) -> LocalPort:
        """Create and register a port.

        Raises
        ------
        ValueError
            If a port with the same id is already registered.
        """
        if port_id in self._ports:
            msg = f"Port already registered: {port_id}"
            raise ValueError(msg)
        port = LocalPort(self, port_id)
        self._ports[port_id] = port
        logger.debug("Registered port %s", port_id)
        return port

    def unregister(self, port_id: str) -> None:
        self._ports.pop(port_id, None)
        self._pending.pop(port_id, None)
        logger.debug("Unregistered port %s", port_id)

    def send(self, destination: str, message: Message) -> None:
        """Schedule delivery of *message* to *destination* on the running loop."""
        payload: Message | bytes = (
            self._serializer.serialize(message) if self._serializer is not None else message
        )
        asyncio.get_running_loop().call_soon(self._deliver, destination, payload)

    def flush(self, port_id: str) -> None:
        """Deliver messages buffered for *port_id* to its handlers."""
        port = self._ports.get(port_id)
        if port is None:
            return
        for payload in self._pending.pop(port_id, []):
            port.dispatch(self._decode(payload))

    def _deliver(self, destination: str, payload: Message | bytes) -> None:
        port = self._ports.get(destination)
        if port is None:
            logger.warning("No port %s, dropping message", destination)
            return
        if port.has_handlers:
            port.dispatch(self._decode(payload))
            return
        buf = self._pending.setdefault(destination, [])
        if len(buf) >= self._max_pending_per_port:
            logger.warning("Pending buffer full for port %s, dropping message", destination)
            return
        buf.append(payload)

    def _decode(self, payload: Message | bytes) -> Message:
        if isinstance(payload, Message):
            return payload
        if self._serializer is None:
            msg = "Received encoded bytes but no serializer is configured"
            raise ProtocolError(msg)
        return self._serializer.deserialize(payload)
