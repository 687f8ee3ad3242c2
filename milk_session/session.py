"""Live milk sessions driven through a named pipe.

A session is an external ``milk`` process reading commands from a FIFO. The
wrapper only ever writes to it: :meth:`SessionHandle.send` returns as soon as
the command is on the pipe, not when milk has executed it. The one way to
know that every command sent so far has finished is to tear the session
down::

    with open_session() as milk:
        milk.send('writef2file "/tmp/out.txt" 0.5')
        # the command may still be pending here
    # the session has exited, so /tmp/out.txt is written

Teardown sends ``exit``, waits for the process and removes the FIFO. It runs
exactly once: on :meth:`SessionHandle.close`, on leaving the ``with`` block,
or when the handle is garbage collected or the interpreter exits.
"""

from __future__ import annotations

import logging
import random
import subprocess
import weakref
from typing import Iterable, Optional

from .config import SessionConfig
from .errors import CommandWriteError, SessionClosedError
from .process import (
    ESCALATION_TIMEOUT,
    CommandChannel,
    create_fifo,
    kill_process,
    make_fifo_path,
    open_write_end,
    reap_process,
    remove_fifo,
    spawn_session_process,
)

_logger = logging.getLogger(__name__)


def _teardown(
    process: subprocess.Popen,
    channel: CommandChannel,
    exit_command: str,
    close_timeout: Optional[float],
) -> Optional[int]:
    # Must not reference the handle: runs from weakref.finalize.
    wait_timeout = close_timeout
    try:
        channel.send(exit_command, timeout=close_timeout)
    except CommandWriteError as exc:
        _logger.warning(
            "Couldn't send %r to session process %s (already exited?): %s",
            exit_command,
            process.pid,
            exc,
        )
        # without the exit command the process may never stop by itself
        if wait_timeout is None or wait_timeout > ESCALATION_TIMEOUT:
            wait_timeout = ESCALATION_TIMEOUT
    channel.close()
    returncode = reap_process(process, timeout=wait_timeout)
    remove_fifo(channel.path)
    if returncode:
        _logger.warning(
            "Session process %s exited with status %s", process.pid, returncode
        )
    else:
        _logger.debug("Session process %s exited with status %s", process.pid, returncode)
    return returncode


class SessionHandle:
    """Owns one milk process and the write end of its command pipe.

    Use :meth:`open` (or :func:`open_session`) to create one. A handle is
    meant for a single owner; callers sharing it between threads must
    serialize access themselves.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        channel: CommandChannel,
        config: SessionConfig,
    ) -> None:
        self._process = process
        self._channel = channel
        self._config = config
        self._returncode: Optional[int] = None
        self._finalizer = weakref.finalize(
            self,
            _teardown,
            process,
            channel,
            config.exit_command,
            config.close_timeout,
        )

    @classmethod
    def open(cls, config: Optional[SessionConfig] = None) -> "SessionHandle":
        """Create a FIFO, spawn milk on it and wait until milk is listening.

        Raises ChannelCreationError, ProcessSpawnError or ChannelOpenError.
        Nothing is retried; opening again uses a fresh channel name.
        """

        if config is None:
            config = SessionConfig.from_env()
        rng = random.Random()
        fifo_path = make_fifo_path(config, rng)
        create_fifo(fifo_path)
        try:
            process = spawn_session_process(config, fifo_path)
        except BaseException:
            remove_fifo(fifo_path)
            raise
        try:
            fd = open_write_end(
                fifo_path,
                reader_alive=lambda: process.poll() is None,
                timeout=config.open_timeout,
            )
        except BaseException:
            kill_process(process)
            remove_fifo(fifo_path)
            raise
        channel = CommandChannel(fd, path=fifo_path, encoding=config.encoding)
        _logger.debug("Session %s ready on %s", process.pid, fifo_path)
        return cls(process, channel, config)

    def send(self, command: str) -> None:
        """Queue one command on the session.

        ``command`` must not contain a newline; that is not checked, and
        milk would see it as several commands. Returns once the command is
        on the pipe, without waiting for milk to run it.
        Raises CommandWriteError if the pipe is broken.
        """

        self._require_open()
        self._channel.send(command)

    def send_many(self, commands: Iterable[str]) -> None:
        """Queue several commands in order.

        Not atomic: if a write fails, an unknown prefix of ``commands`` has
        already been delivered. Whatever was accepted is flushed before
        this returns or raises. A plain string is rejected with TypeError.
        """

        self._require_open()
        self._channel.send_many(commands)

    def close(self) -> Optional[int]:
        """Send ``exit``, wait for milk to finish and remove the FIFO.

        When this returns, every command sent before has been executed.
        Returns the process exit status. Failures along the way are logged,
        not raised. Raises SessionClosedError if the session is already
        torn down.
        """

        if not self._finalizer.alive:
            raise SessionClosedError(f"{self!r} is already closed")
        self._returncode = self._finalizer()
        return self._returncode

    def _require_open(self) -> None:
        if not self._finalizer.alive:
            raise SessionClosedError(f"{self!r} is closed")

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def fifo_path(self) -> str:
        return self._channel.path

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def process(self) -> subprocess.Popen:
        return self._process

    @property
    def returncode(self) -> Optional[int]:
        return self._returncode

    def __enter__(self) -> "SessionHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._finalizer.alive:
            self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<SessionHandle pid={self._process.pid} fifo={self.fifo_path} ({state})>"


def open_session(config: Optional[SessionConfig] = None, **overrides) -> SessionHandle:
    """Open a milk session; keyword ``overrides`` adjust ``config``."""

    if config is None:
        config = SessionConfig.from_env(**overrides)
    elif overrides:
        config = config.with_overrides(**overrides)
    return SessionHandle.open(config)


__all__ = ["SessionHandle", "open_session"]
