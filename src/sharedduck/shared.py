"""Replication of a ``Duck`` across execution contexts over a port.

One endpoint per (name, channel) pair is the *master*: the port whose id
equals the reserved master id. Every other endpoint is a *replica*. All
writes are serialized through the master, which applies them with its own
reducers and relays them to every replica it knows about (its mirrors).

Protocol::

    replica                           master
       | -- state/request ------------> |   mirrors.add(replica)
       | <----------- state/response -- |   snapshot of master state
       | -- forward/master {id,..} ---> |   apply once
       | <-- forward/replica {id,..} -- |   to every mirror
       | -- replica/leave ------------> |   mirrors.discard(replica)

A replica attached to a ``Channels`` registry first sends
``register/replica`` to the master's default-channel endpoint and waits
for ``register/success`` before requesting state or forwarding actions.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from collections.abc import Mapping
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from sharedduck.duck import ActionCall, Duck, OriginAction, Reducer, Resolve
from sharedduck.errors import ProtocolError
from sharedduck.gate import ReadinessGate
from sharedduck.messages import DEFAULT_CHANNEL, MASTER_PORT_ID, Event, ForwardData, Message
from sharedduck.port import Port
from sharedduck.store import StateContainer, Unsubscribe

if TYPE_CHECKING:
    from sharedduck.channels import ChannelEvent, Channels
    from sharedduck.config import SharedDuckConfig


class Role(StrEnum):
    MASTER = "master"
    REPLICA = "replica"


class Status(StrEnum):
    """Lifecycle of an endpoint.

    A master goes ``CREATED -> READY``. A replica goes ``CREATED ->
    [REGISTERING ->] AWAITING_STATE -> READY``. Both end in ``CLOSED``.
    """

    CREATED = "created"
    REGISTERING = "registering"
    AWAITING_STATE = "awaiting_state"
    READY = "ready"
    CLOSED = "closed"


class SharedDuck[S](Duck[S]):
    """A ``Duck`` kept in sync with its peers through a ``Port``.

    Must be created while an asyncio event loop is running: the port
    handler is installed one loop iteration after construction.

    Parameters
    ----------
    name : str
        Logical store name; messages for other names are ignored.
    port : Port
        Transport shared by every endpoint of this execution context.
    state : S
        Initial state. Replicas replace it with the master's snapshot.
    reducers : Mapping[str, Reducer[S]]
        Same reducer table on every endpoint.
    channel : str
        Synchronization group. Defaults to ``""``.
    channels : Channels | None
        Registry this endpoint belongs to. Enables the registration
        handshake and closes the endpoint on a ``"remove"`` notification.
    master_id : str
        Port id of the master.
    store : StateContainer[S] | None
        State container to wrap.

    Examples
    --------
    >>> hub = PortHub()
    >>> master = SharedDuck("theme", hub.port("master"), {"theme": "light"}, reducers)
    >>> replica = SharedDuck("theme", hub.port("window-1"), {"theme": "light"}, reducers)
    >>> await replica.ready()
    >>> await replica.actions.set_theme("dark")
    ('dark',)
    >>> master.state
    {'theme': 'dark'}
    """

    def __init__(
        self,
        name: str,
        port: Port,
        state: S,
        reducers: Mapping[str, Reducer[S]],
        *,
        channel: str = DEFAULT_CHANNEL,
        channels: Channels | None = None,
        master_id: str = MASTER_PORT_ID,
        store: StateContainer[S] | None = None,
    ) -> None:
        self._loop = asyncio.get_running_loop()
        self._shared_name = name
        self._port = port
        self._channel = channel
        self._channels = channels
        self._master_id = master_id
        self._role = Role.MASTER if port.id == master_id else Role.REPLICA
        self._status = Status.CREATED
        self._mirrors: set[str] = set()
        self._pending: dict[str, ReadinessGate[tuple[Any, ...]]] = {}
        self._held: list[dict[str, Any]] = []
        self._action_ids = itertools.count()
        self._resolve: Resolve[S] | None = None
        self._unsubscribe_port: Unsubscribe | None = None
        self._unsubscribe_channels: Unsubscribe | None = None
        suffix = f"[{channel}]" if channel else ""
        self._protocol_logger = logging.getLogger(f"sharedduck.shared.{name}{suffix}")

        if channels is not None:
            self._unsubscribe_channels = channels.subscribe(self._on_channel_event)

        super().__init__(
            state,
            reducers,
            initialize=self._initialize,
            action_rewrite=(
                self._master_rewrite if self._role is Role.MASTER else self._replica_rewrite
            ),
            name=name,
            store=store,
        )

    @property
    def name(self) -> str:
        return self._shared_name

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def port(self) -> Port:
        return self._port

    @property
    def role(self) -> Role:
        return self._role

    @property
    def is_master(self) -> bool:
        return self._role is Role.MASTER

    @property
    def status(self) -> Status:
        return self._status

    @property
    def mirrors(self) -> frozenset[str]:
        """Replica port ids the master relays actions to."""
        return frozenset(self._mirrors)

    @property
    def pending_actions(self) -> int:
        """Replica actions still waiting for the master's relay."""
        return len(self._pending)

    def close(self) -> None:
        """Stop processing messages and release subscriptions.

        A replica tells the master to drop it from its mirrors. Actions
        still awaiting confirmation are abandoned: their awaitables never
        resolve. Calling ``close()`` again has no effect.
        """
        if self._status is Status.CLOSED:
            return
        installed = self._unsubscribe_port is not None
        self._status = Status.CLOSED
        if self._unsubscribe_port is not None:
            self._unsubscribe_port()
            self._unsubscribe_port = None
        if self._unsubscribe_channels is not None:
            self._unsubscribe_channels()
            self._unsubscribe_channels = None
        if self._role is Role.REPLICA and installed:
            self._send(self._master_id, Event.REPLICA_LEAVE)
        if self._pending:
            self._protocol_logger.info("Closed with %d pending actions", len(self._pending))
        self._pending.clear()
        self._held.clear()
        self._protocol_logger.info("Closed")

    def __enter__(self) -> SharedDuck[S]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # --- action hooks ---

    def _master_rewrite(self, call: ActionCall, origin: OriginAction) -> tuple[Any, ...]:
        self._broadcast(ForwardData(action=call.action, payload=call.payload))
        return origin(*call.payload)

    def _replica_rewrite(
        self, call: ActionCall, origin: OriginAction
    ) -> ReadinessGate[tuple[Any, ...]]:
        action_id = f"{self._port.id}_{next(self._action_ids)}"
        gate: ReadinessGate[tuple[Any, ...]] = ReadinessGate()
        self._pending[action_id] = gate
        data = ForwardData(action=call.action, payload=call.payload, id=action_id).to_dict()
        # the master has no endpoint for this channel until registration succeeds
        if self._needs_registration() and self._status in (Status.CREATED, Status.REGISTERING):
            self._protocol_logger.debug("Holding %s (%s) until registered", call.action, action_id)
            self._held.append(data)
            return gate
        self._protocol_logger.debug("Forwarding %s (%s) to master", call.action, action_id)
        self._send(self._master_id, Event.FORWARD_MASTER, data)
        return gate

    # --- initialization ---

    def _initialize(self, duck: Duck[S], resolve: Resolve[S]) -> None:
        self._resolve = resolve
        self._loop.call_soon(self._start)

    def _start(self) -> None:
        if self._status is Status.CLOSED:
            return
        if self._role is Role.MASTER:
            self._unsubscribe_port = self._port.on_message(self._on_message)
            self._protocol_logger.info("Master handler installed on %s", self._port.id)
            self._mark_ready()
            return

        if self._needs_registration():
            self._status = Status.REGISTERING
            self._unsubscribe_port = self._port.on_message(self._on_message)
            self._protocol_logger.info("Registering channel %r with master", self._channel)
            self._send(self._master_id, Event.REGISTER_REPLICA)
        else:
            self._status = Status.AWAITING_STATE
            self._unsubscribe_port = self._port.on_message(self._on_message)
            self._request_state()

    def _needs_registration(self) -> bool:
        return self._channels is not None

    def _request_state(self) -> None:
        self._protocol_logger.debug("Requesting state from %s", self._master_id)
        self._send(self._master_id, Event.STATE_REQUEST)

    def _mark_ready(self) -> None:
        self._status = Status.READY
        if self._resolve is not None:
            self._resolve(self)

    # --- message handling ---

    def _on_message(self, message: Message) -> None:
        if self._status is Status.CLOSED:
            return

        if message.event == Event.REGISTER_REPLICA:
            if message.name == self._shared_name and self._is_registrar():
                self._on_register(message)
            return

        if not message.matches(self._shared_name, self._channel):
            return

        try:
            match (self._role, message.event):
                case (Role.MASTER, Event.STATE_REQUEST):
                    self._on_state_request(message)
                case (Role.MASTER, Event.FORWARD_MASTER):
                    self._on_forward_master(message)
                case (Role.MASTER, Event.REPLICA_LEAVE):
                    self._on_replica_leave(message)
                case (Role.REPLICA, Event.STATE_RESPONSE):
                    self._on_state_response(message)
                case (Role.REPLICA, Event.FORWARD_REPLICA):
                    self._on_forward_replica(message)
                case (Role.REPLICA, Event.REGISTER_SUCCESS):
                    self._on_register_success(message)
                case _:
                    self._protocol_logger.warning(
                        "Unexpected %s from %s, dropping", message.event, message.port_id
                    )
        except ProtocolError as exc:
            self._protocol_logger.warning(
                "Malformed %s from %s, dropping: %s", message.event, message.port_id, exc
            )

    def _is_registrar(self) -> bool:
        return (
            self._role is Role.MASTER
            and self._channels is not None
            and self._channel == self._channels.default
        )

    def _on_register(self, message: Message) -> None:
        if self._channels is None:
            return
        self._protocol_logger.info(
            "Replica %s registered channel %r", message.port_id, message.channel
        )
        self._channels.notify(message.channel, "add")
        self._port.send(
            message.port_id,
            Message(
                port_id=self._port.id,
                event=Event.REGISTER_SUCCESS,
                name=self._shared_name,
                channel=message.channel,
                data={},
            ),
        )

    def _on_state_request(self, message: Message) -> None:
        self._mirrors.add(message.port_id)
        self._protocol_logger.debug("Mirror %s requested state", message.port_id)
        self._send(message.port_id, Event.STATE_RESPONSE, copy.deepcopy(self.state))

    def _on_forward_master(self, message: Message) -> None:
        data = ForwardData.from_dict(message.data)
        origin = self.origin_actions.get(data.action)
        if origin is None:
            self._protocol_logger.warning(
                "Unknown action %r from %s, dropping", data.action, message.port_id
            )
            return
        self._mirrors.add(message.port_id)
        origin(*data.payload)
        self._broadcast(data)

    def _on_replica_leave(self, message: Message) -> None:
        self._mirrors.discard(message.port_id)
        self._protocol_logger.info("Mirror %s left", message.port_id)

    def _on_state_response(self, message: Message) -> None:
        if self._status is not Status.AWAITING_STATE:
            self._protocol_logger.debug("Ignoring state/response while %s", self._status)
            return
        self.set_state(message.data)
        self._protocol_logger.info("Hydrated from %s", message.port_id)
        self._mark_ready()

    def _on_forward_replica(self, message: Message) -> None:
        data = ForwardData.from_dict(message.data)
        origin = self.origin_actions.get(data.action)
        if origin is None:
            self._protocol_logger.warning("Unknown action %r relayed, dropping", data.action)
            return
        origin(*data.payload)
        if data.id is None:
            return
        gate = self._pending.pop(data.id, None)
        if gate is None:
            self._protocol_logger.debug("No pending action %s", data.id)
            return
        gate.resolve(data.payload)

    def _on_register_success(self, message: Message) -> None:
        if self._status is not Status.REGISTERING:
            return
        self._status = Status.AWAITING_STATE
        self._request_state()
        held, self._held = self._held, []
        for data in held:
            self._send(self._master_id, Event.FORWARD_MASTER, data)

    def _on_channel_event(self, channel: str, event: ChannelEvent) -> None:
        if event == "remove" and channel == self._channel:
            self.close()

    # --- sending ---

    def _broadcast(self, data: ForwardData) -> None:
        payload = data.to_dict()
        for mirror in list(self._mirrors):
            self._send(mirror, Event.FORWARD_REPLICA, payload)

    def _send(self, destination: str, event: Event, data: Any = None) -> None:
        self._port.send(
            destination,
            Message(
                port_id=self._port.id,
                event=event,
                name=self._shared_name,
                channel=self._channel,
                data={} if data is None else data,
            ),
        )

    def __repr__(self) -> str:
        return (
            f"SharedDuck(name={self._shared_name!r}, channel={self._channel!r}, "
            f"role={self._role.value}, status={self._status.value})"
        )


def shared_duck[S](
    name: str,
    port: Port,
    state: S,
    reducers: Mapping[str, Reducer[S]],
    *,
    channel: str = DEFAULT_CHANNEL,
    channels: Channels | None = None,
    config: SharedDuckConfig | None = None,
    store: StateContainer[S] | None = None,
) -> SharedDuck[S]:
    """Create a ``SharedDuck``, taking the master id from *config*.

    Examples
    --------
    >>> duck = shared_duck("theme", port, {"theme": "light"}, reducers, config=load_config())
    """
    master_id = config.port.master_id if config is not None else MASTER_PORT_ID
    return SharedDuck(
        name,
        port,
        state,
        reducers,
        channel=channel,
        channels=channels,
        master_id=master_id,
        store=store,
    )
