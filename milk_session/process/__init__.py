"""Process and channel primitives for milk sessions."""

from .channel import (
    CommandChannel,
    create_fifo,
    make_fifo_path,
    open_write_end,
    remove_fifo,
)
from .manager import (
    ESCALATION_TIMEOUT,
    kill_process,
    reap_process,
    spawn_session_process,
)

__all__ = [
    "CommandChannel",
    "create_fifo",
    "make_fifo_path",
    "open_write_end",
    "remove_fifo",
    "ESCALATION_TIMEOUT",
    "kill_process",
    "reap_process",
    "spawn_session_process",
]
