"""Wire envelope and event names of the replication protocol.

Every message exchanged over a port is a ``Message``. Its dictionary form
(``to_dict`` / ``from_dict``) uses the keys ``portId``, ``event``, ``name``,
``channel`` and ``data`` so that endpoints written in other languages can
share the same port.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from sharedduck.errors import ProtocolError

MASTER_PORT_ID = "master"
"""Reserved port id of the master endpoint."""

DEFAULT_CHANNEL = ""


class Event(StrEnum):
    """Protocol events carried in ``Message.event``.

    Examples
    --------
    >>> Event("state/request") is Event.STATE_REQUEST
    True
    """

    STATE_REQUEST = "state/request"
    STATE_RESPONSE = "state/response"
    FORWARD_MASTER = "forward/master"
    FORWARD_REPLICA = "forward/replica"
    REGISTER_REPLICA = "register/replica"
    REGISTER_SUCCESS = "register/success"
    REPLICA_LEAVE = "replica/leave"


@dataclass(frozen=True)
class Message:
    """Envelope sent between endpoints.

    Parameters
    ----------
    port_id : str
        Id of the sending port.
    event : str
        Protocol event, one of ``Event``.
    name : str
        Logical store name.
    channel : str
        Synchronization group; ``""`` is the default channel.
    data : Any
        Event-specific payload.

    Examples
    --------
    >>> msg = Message("replica-1", Event.STATE_REQUEST, "theme")
    >>> msg.to_dict()
    {'portId': 'replica-1', 'event': 'state/request', 'name': 'theme', 'channel': '', 'data': {}}
    """

    port_id: str
    event: str
    name: str
    channel: str = DEFAULT_CHANNEL
    data: Any = field(default_factory=dict)

    def matches(self, name: str, channel: str) -> bool:
        """Return ``True`` if the message targets the (name, channel) pair."""
        return self.name == name and self.channel == channel

    def to_dict(self) -> dict[str, Any]:
        return {
            "portId": self.port_id,
            "event": str(self.event),
            "name": self.name,
            "channel": self.channel,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, raw: object) -> Message:
        """Build a message from its dictionary form.

        ``forward/*`` payloads are normalised to tuples, since codecs such as
        JSON and MessagePack turn tuples into lists.

        Raises
        ------
        ProtocolError
            If *raw* is not a mapping with the envelope keys.
        """
        match raw:
            case {
                "portId": str() as port_id,
                "event": str() as event,
                "name": str() as name,
            }:
                channel = raw.get("channel") or DEFAULT_CHANNEL
                data = raw.get("data", {})
            case _:
                msg = f"Not a message envelope: {raw!r}"
                raise ProtocolError(msg)

        if event in (Event.FORWARD_MASTER, Event.FORWARD_REPLICA):
            data = ForwardData.from_dict(data).to_dict()
        return cls(port_id=port_id, event=event, name=name, channel=channel, data=data)


@dataclass(frozen=True)
class ForwardData:
    """Payload of ``forward/master`` and ``forward/replica`` messages.

    Parameters
    ----------
    action : str
        Action name.
    payload : tuple[Any, ...]
        Positional action arguments.
    id : str | None
        Correlation id of a replica-issued action.
    """

    action: str
    payload: tuple[Any, ...] = ()
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"action": self.action, "payload": self.payload}
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, raw: object) -> ForwardData:
        match raw:
            case {"action": str() as action, "payload": list() | tuple() as payload}:
                action_id = raw.get("id")
                return cls(
                    action=action,
                    payload=tuple(payload),
                    id=action_id if isinstance(action_id, str) else None,
                )
            case _:
                msg = f"Not a forward payload: {raw!r}"
                raise ProtocolError(msg)
