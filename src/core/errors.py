"""Exception types shared across the loop4r daemon.

None of these are fatal: callers log them and carry on, and the
periodic tick retries whatever failed.
"""


class Loop4rError(Exception):
    """Base class for loop4r errors."""


class EngineConnectionError(Loop4rError):
    """An OSC socket could not be bound or connected."""


class ProtocolError(Loop4rError):
    """An OSC message had the wrong arity, argument types or target."""


class DeviceError(Loop4rError):
    """A MIDI port is missing, went away or could not be created."""
