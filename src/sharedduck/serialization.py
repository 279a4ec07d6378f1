"""Message serialization for ports that cross a process boundary.

Provides the ``Serializer`` protocol and two codecs for ``Message``
envelopes: ``JsonSerializer`` (human-readable) and ``MsgpackSerializer``
(compact binary). ``serializer_for`` maps a configuration value to an
instance.
"""

from __future__ import annotations

import json
import logging
from typing import Literal, Protocol, runtime_checkable

import msgpack

from sharedduck.errors import ConfigError, ProtocolError
from sharedduck.messages import Message

logger = logging.getLogger("sharedduck.serialization")

type SerializerKind = Literal["json", "msgpack", "none"]


@runtime_checkable
class Serializer(Protocol):
    """Protocol for message serialization and deserialization.

    Examples
    --------
    Minimal implementation:

    >>> class MySerializer:
    ...     def serialize(self, message: Message) -> bytes: ...
    ...     def deserialize(self, data: bytes) -> Message: ...
    """

    def serialize(self, message: Message) -> bytes:
        """Serialize a message to bytes."""
        ...

    def deserialize(self, data: bytes) -> Message:
        """Deserialize bytes back to a message."""
        ...


class JsonSerializer:
    """JSON codec for message envelopes.

    State snapshots and action payloads must be JSON-compatible. Tuples come
    back as lists, except ``forward/*`` payloads which are restored as tuples.

    Examples
    --------
    >>> ser = JsonSerializer()
    >>> ser.deserialize(ser.serialize(Message("r1", "state/request", "theme")))
    Message(port_id='r1', event='state/request', name='theme', channel='', data={})
    """

    def serialize(self, message: Message) -> bytes:
        """Serialize a message to UTF-8 encoded JSON.

        Parameters
        ----------
        message : Message
            Envelope to encode.

        Returns
        -------
        bytes
        """
        return json.dumps(message.to_dict()).encode("utf-8")

    def deserialize(self, data: bytes) -> Message:
        """Deserialize JSON bytes back to a message.

        Raises
        ------
        ProtocolError
            If the bytes are not valid JSON or not an envelope.
        """
        try:
            raw: object = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Failed to decode JSON message (%d bytes)", len(data))
            msg = f"Invalid JSON message: {exc}"
            raise ProtocolError(msg) from exc
        return Message.from_dict(raw)


class MsgpackSerializer:
    """MessagePack codec for message envelopes.

    Same structure as ``JsonSerializer`` but encoded to MessagePack, giving
    compact output with fast encode/decode.

    Examples
    --------
    >>> ser = MsgpackSerializer()
    >>> ser.deserialize(ser.serialize(Message("master", "state/response", "theme", data={"theme": "dark"}))).data
    {'theme': 'dark'}
    """

    def serialize(self, message: Message) -> bytes:
        """Serialize a message to MessagePack bytes."""
        return msgpack.packb(message.to_dict(), use_bin_type=True)  # type: ignore[no-any-return]

    def deserialize(self, data: bytes) -> Message:
        """Deserialize MessagePack bytes back to a message.

        Raises
        ------
        ProtocolError
            If the bytes are not valid MessagePack or not an envelope.
        """
        try:
            raw: object = msgpack.unpackb(data, raw=False)
        except (msgpack.UnpackException, ValueError) as exc:
            logger.warning("Failed to decode msgpack message (%d bytes)", len(data))
            msg = f"Invalid msgpack message: {exc}"
            raise ProtocolError(msg) from exc
        return Message.from_dict(raw)


def serializer_for(kind: SerializerKind) -> Serializer | None:
    """Return a serializer instance for a configuration value.

    Parameters
    ----------
    kind : SerializerKind
        ``"json"``, ``"msgpack"`` or ``"none"``.

    Returns
    -------
    Serializer | None
        ``None`` for ``"none"``: messages are passed by reference.

    Raises
    ------
    ConfigError
        If *kind* is not a known serializer.

    Examples
    --------
    >>> serializer_for("json")
    <sharedduck.serialization.JsonSerializer object at ...>
    """
    match kind:
        case "json":
            return JsonSerializer()
        case "msgpack":
            return MsgpackSerializer()
        case "none":
            return None
        case _:
            msg = f"Unknown serializer: {kind!r}"
            raise ConfigError(msg)
