from sharedduck.channels import ChannelEvent, ChannelListener, Channels, ChannelStores, share_with_channels
from sharedduck.config import (
    ChannelsConfig,
    PortConfig,
    SerializationConfig,
    SharedDuckConfig,
    discover_config,
    load_config,
)
from sharedduck.duck import ActionCall, Actions, Duck, OriginActions
from sharedduck.errors import ConfigError, ProtocolError, SharedDuckError, UnknownActionError
from sharedduck.gate import ReadinessGate
from sharedduck.messages import DEFAULT_CHANNEL, MASTER_PORT_ID, Event, ForwardData, Message
from sharedduck.port import LocalPort, Port, PortHub
from sharedduck.serialization import JsonSerializer, MsgpackSerializer, Serializer, serializer_for
from sharedduck.shared import Role, SharedDuck, Status, shared_duck
from sharedduck.store import StateContainer, Store

__all__ = [
    # Core
    "Duck",
    "ActionCall",
    "Actions",
    "OriginActions",
    "ReadinessGate",
    "StateContainer",
    "Store",
    # Replication
    "SharedDuck",
    "shared_duck",
    "Role",
    "Status",
    "MASTER_PORT_ID",
    "DEFAULT_CHANNEL",
    # Channels
    "Channels",
    "ChannelStores",
    "ChannelEvent",
    "ChannelListener",
    "share_with_channels",
    # Transport
    "Port",
    "PortHub",
    "LocalPort",
    "Message",
    "Event",
    "ForwardData",
    # Serialization
    "Serializer",
    "JsonSerializer",
    "MsgpackSerializer",
    "serializer_for",
    # Config
    "SharedDuckConfig",
    "PortConfig",
    "ChannelsConfig",
    "SerializationConfig",
    "discover_config",
    "load_config",
    # Errors
    "SharedDuckError",
    "UnknownActionError",
    "ProtocolError",
    "ConfigError",
]
