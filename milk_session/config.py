"""Session configuration and its environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional, Tuple

EXECUTABLE_ENV = "MILK_SESSION_EXECUTABLE"
FIFO_DIR_ENV = "MILK_SESSION_FIFO_DIR"
OPEN_TIMEOUT_ENV = "MILK_SESSION_OPEN_TIMEOUT"
CLOSE_TIMEOUT_ENV = "MILK_SESSION_CLOSE_TIMEOUT"

# Channel suffixes are drawn from [0, FIFO_SUFFIX_MAX] and zero-padded
FIFO_SUFFIX_MAX = 1_000_000
FIFO_SUFFIX_WIDTH = 6


def _timeout_from_env(name: str) -> Optional[float]:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return None
    try:
        timeout = float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, not {value!r}") from None
    if timeout < 0:
        raise ValueError(f"{name} must not be negative")
    return timeout


@dataclass(frozen=True)
class SessionConfig:
    """How a milk session process is launched and torn down.

    The process is started as ``[*command, *fifo_flags, <fifo path>]``.
    ``open_timeout`` bounds the wait for the process to open its end of the
    channel; ``close_timeout`` bounds the wait for it to exit after the
    termination command, after which it is terminated and then killed.
    ``None`` waits forever.
    """

    command: Tuple[str, ...] = ("milk",)
    fifo_flags: Tuple[str, ...] = ("-f", "-F")
    fifo_dir: str = "/tmp"
    fifo_prefix: str = ".fifo."
    exit_command: str = "exit"
    encoding: str = "utf-8"
    cwd: Optional[str] = None
    env: Optional[Mapping[str, str]] = field(default=None, compare=False)
    open_timeout: Optional[float] = None
    close_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if isinstance(self.command, str):
            object.__setattr__(self, "command", (self.command,))
        else:
            object.__setattr__(self, "command", tuple(self.command))
        object.__setattr__(self, "fifo_flags", tuple(self.fifo_flags))
        if not self.command:
            raise ValueError("command must name the session executable")
        if "\n" in self.exit_command:
            raise ValueError("exit_command must be a single line")
        for name in ("open_timeout", "close_timeout"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must not be negative")

    @classmethod
    def from_env(cls, **overrides) -> "SessionConfig":
        """Build a config from MILK_SESSION_* environment variables.

        Explicit keyword ``overrides`` take precedence over the environment.
        """

        kwargs = {}
        executable = os.environ.get(EXECUTABLE_ENV)
        if executable:
            kwargs["command"] = (executable,)
        fifo_dir = os.environ.get(FIFO_DIR_ENV)
        if fifo_dir:
            kwargs["fifo_dir"] = fifo_dir
        open_timeout = _timeout_from_env(OPEN_TIMEOUT_ENV)
        if open_timeout is not None:
            kwargs["open_timeout"] = open_timeout
        close_timeout = _timeout_from_env(CLOSE_TIMEOUT_ENV)
        if close_timeout is not None:
            kwargs["close_timeout"] = close_timeout
        kwargs.update(overrides)
        return cls(**kwargs)

    def with_overrides(self, **overrides) -> "SessionConfig":
        return replace(self, **overrides)

    def argv(self, fifo_path: str) -> list[str]:
        return [*self.command, *self.fifo_flags, fifo_path]

    def process_env(self) -> Optional[dict[str, str]]:
        if self.env is None:
            return None
        env = os.environ.copy()
        env.update(self.env)
        return env


__all__ = [
    "SessionConfig",
    "EXECUTABLE_ENV",
    "FIFO_DIR_ENV",
    "OPEN_TIMEOUT_ENV",
    "CLOSE_TIMEOUT_ENV",
    "FIFO_SUFFIX_MAX",
    "FIFO_SUFFIX_WIDTH",
]
