from .config import SessionConfig
from .errors import (
    ChannelCreationError,
    ChannelOpenError,
    CommandWriteError,
    ProcessSpawnError,
    SessionClosedError,
    SessionError,
)
from .session import SessionHandle, open_session

__all__ = [
    "SessionConfig",
    "SessionHandle",
    "open_session",
    "SessionError",
    "ChannelCreationError",
    "ChannelOpenError",
    "CommandWriteError",
    "ProcessSpawnError",
    "SessionClosedError",
]
