"""TOML-based configuration for shared ducks.

Provides ``load_config`` / ``discover_config`` for loading
``sharedduck.toml`` and frozen dataclasses for port, channel and
serialization settings.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, get_args

from sharedduck.errors import ConfigError
from sharedduck.messages import DEFAULT_CHANNEL, MASTER_PORT_ID
from sharedduck.serialization import SerializerKind

__all__ = [
    "CONFIG_FILENAME",
    "ChannelsConfig",
    "PortConfig",
    "SerializationConfig",
    "SharedDuckConfig",
    "discover_config",
    "load_config",
]

CONFIG_FILENAME = "sharedduck.toml"


@dataclass(frozen=True)
class PortConfig:
    """Port settings.

    Parameters
    ----------
    master_id : str
        Port id treated as the master for every store it serves.
    max_pending_per_port : int
        Messages buffered by ``PortHub`` for a port that has no handler yet.

    Examples
    --------
    >>> PortConfig(master_id="main")
    PortConfig(master_id='main', max_pending_per_port=64)
    """

    master_id: str = MASTER_PORT_ID
    max_pending_per_port: int = 64


@dataclass(frozen=True)
class ChannelsConfig:
    """Channel settings.

    Parameters
    ----------
    default : str
        Name of the default channel.
    """

    default: str = DEFAULT_CHANNEL


@dataclass(frozen=True)
class SerializationConfig:
    """Serialization settings for ``PortHub``.

    Parameters
    ----------
    serializer : SerializerKind
        ``"json"``, ``"msgpack"`` or ``"none"`` (pass by reference).

    Examples
    --------
    >>> SerializationConfig(serializer="json")
    SerializationConfig(serializer='json')
    """

    serializer: SerializerKind = "none"


@dataclass(frozen=True)
class SharedDuckConfig:
    """Top-level configuration container.

    Typically created via ``load_config()`` but can be constructed manually.

    Parameters
    ----------
    port : PortConfig
        Port settings.
    channels : ChannelsConfig
        Channel settings.
    serialization : SerializationConfig
        Serialization settings.

    Examples
    --------
    >>> config = SharedDuckConfig()
    >>> config.port.master_id
    'master'
    """

    port: PortConfig = field(default_factory=PortConfig)
    channels: ChannelsConfig = field(default_factory=ChannelsConfig)
    serialization: SerializationConfig = field(default_factory=SerializationConfig)


def discover_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for ``sharedduck.toml``.

    Parameters
    ----------
    start : Path | None
        Directory to start searching from.

    Returns
    -------
    Path | None
        Path to the discovered config file, or ``None`` if not found.
    """
    current = start or Path.cwd()
    current = current.resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def _section[T](cls: type[T], raw: dict[str, Any], name: str) -> T:
    section = raw.get(name, {})
    if not isinstance(section, dict):
        msg = f"[{name}] must be a table"
        raise ConfigError(msg)
    try:
        return cls(**section)
    except TypeError as exc:
        msg = f"Invalid [{name}] section: {exc}"
        raise ConfigError(msg) from exc


def load_config(path: Path | None = None) -> SharedDuckConfig:
    """Load a ``SharedDuckConfig`` from a TOML file.

    If *path* is ``None``, auto-discovers ``sharedduck.toml`` by walking up
    from the current working directory. Returns the default config if no
    file is found.

    Parameters
    ----------
    path : Path | None
        Explicit path to a TOML config file.

    Returns
    -------
    SharedDuckConfig

    Raises
    ------
    FileNotFoundError
        If an explicit *path* is given but does not exist.
    ConfigError
        If a section holds unknown keys or invalid values.

    Examples
    --------
    >>> config = load_config(Path("sharedduck.toml"))
    >>> config.serialization.serializer
    'msgpack'
    """
    if path is None:
        discovered = discover_config()
        if discovered is None:
            return SharedDuckConfig()
        path = discovered

    if not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open("rb") as f:
        raw = tomllib.load(f)

    port = _section(PortConfig, raw, "port")
    channels = _section(ChannelsConfig, raw, "channels")
    serialization = _section(SerializationConfig, raw, "serialization")

    if not port.master_id:
        msg = "port.master_id must not be empty"
        raise ConfigError(msg)
    if port.max_pending_per_port < 0:
        msg = "port.max_pending_per_port must be >= 0"
        raise ConfigError(msg)
    if serialization.serializer not in get_args(SerializerKind.__value__):
        msg = f"Unknown serializer: {serialization.serializer!r}"
        raise ConfigError(msg)

    return SharedDuckConfig(port=port, channels=channels, serialization=serialization)
