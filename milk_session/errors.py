"""Exceptions raised by milk sessions."""


class SessionError(RuntimeError):
    """Base class for milk session failures."""


class ChannelCreationError(SessionError):
    """Raised when the named pipe cannot be created (collision, permissions, platform)."""


class ProcessSpawnError(SessionError):
    """Raised when the session process cannot be launched."""


class ChannelOpenError(SessionError):
    """Raised when the write end of the channel cannot be opened."""


class CommandWriteError(SessionError):
    """Raised when a command cannot be written, e.g. after the session process died."""


class SessionClosedError(SessionError):
    """Raised when a session is used after teardown."""


__all__ = [
    "SessionError",
    "ChannelCreationError",
    "ProcessSpawnError",
    "ChannelOpenError",
    "CommandWriteError",
    "SessionClosedError",
]
