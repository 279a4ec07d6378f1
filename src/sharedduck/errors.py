"""Exception types raised by sharedduck."""

from __future__ import annotations


class SharedDuckError(Exception):
    """Base class for every error raised by sharedduck."""


class UnknownActionError(SharedDuckError, KeyError):
    """Raised when an action table is asked for a name it does not hold.

    Parameters
    ----------
    action : str
        The missing action name.

    Examples
    --------
    >>> duck.origin_actions["no_such_action"]
    Traceback (most recent call last):
    ...
    sharedduck.errors.UnknownActionError: 'Unknown action: no_such_action'
    """

    def __init__(self, action: str) -> None:
        super().__init__(f"Unknown action: {action}")
        self.action = action


class ProtocolError(SharedDuckError, ValueError):
    """Raised when bytes received from a port do not decode to a message."""


class ConfigError(SharedDuckError, ValueError):
    """Raised when a configuration file holds invalid values."""
