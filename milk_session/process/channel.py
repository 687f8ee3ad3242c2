"""Named-pipe plumbing between the wrapper and a milk session process."""

from __future__ import annotations

import errno
import io
import logging
import os
import random
import select
import time
from typing import Callable, Iterable, Optional

from ..config import FIFO_SUFFIX_MAX, FIFO_SUFFIX_WIDTH, SessionConfig
from ..errors import ChannelCreationError, ChannelOpenError, CommandWriteError

_logger = logging.getLogger(__name__)

# Polling interval while waiting for the reader to open its end
OPEN_POLL_INTERVAL = 0.01


def make_fifo_path(config: SessionConfig, rng: Optional[random.Random] = None) -> str:
    """Return a fresh channel path such as ``/tmp/.fifo.004217``."""

    if rng is None:
        rng = random.Random()
    suffix = rng.randint(0, FIFO_SUFFIX_MAX)
    name = f"{config.fifo_prefix}{suffix:0{FIFO_SUFFIX_WIDTH}d}"
    return os.path.join(config.fifo_dir, name)


def create_fifo(path: str) -> None:
    """Create the named pipe node at ``path``."""

    mkfifo = getattr(os, "mkfifo", None)
    if mkfifo is None:
        raise ChannelCreationError("Named pipes are not supported on this platform")
    try:
        mkfifo(path, 0o600)
    except FileExistsError as exc:
        raise ChannelCreationError(f"Channel {path} already exists") from exc
    except OSError as exc:
        raise ChannelCreationError(f"Couldn't create pipe {path}: {exc}") from exc
    _logger.debug("Created channel %s", path)


def remove_fifo(path: str) -> bool:
    """Best-effort removal of the pipe node. Returns True if it was removed."""

    try:
        os.unlink(path)
    except FileNotFoundError:
        return False
    except OSError as exc:
        _logger.warning("Couldn't remove channel %s: %s", path, exc)
        return False
    _logger.debug("Removed channel %s", path)
    return True


def open_write_end(
    path: str,
    *,
    reader_alive: Callable[[], bool],
    timeout: Optional[float] = None,
) -> int:
    """Open ``path`` for appending once a reader has opened the other end.

    A blocking open would hang forever if the reader dies first, so a
    non-blocking open is retried until it succeeds, ``reader_alive()``
    returns False, or ``timeout`` seconds pass. The returned descriptor is
    switched back to blocking mode.
    """

    flags = os.O_WRONLY | os.O_APPEND | os.O_NONBLOCK
    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        try:
            fd = os.open(path, flags)
        except OSError as exc:
            if exc.errno != errno.ENXIO:
                raise ChannelOpenError(f"Couldn't open channel {path}: {exc}") from exc
        else:
            os.set_blocking(fd, True)
            return fd
        if not reader_alive():
            raise ChannelOpenError(
                f"Session process exited before opening channel {path}"
            )
        if deadline is not None and time.monotonic() > deadline:
            raise ChannelOpenError(
                f"Session process did not open channel {path} within {timeout} s"
            )
        time.sleep(OPEN_POLL_INTERVAL)


class CommandChannel:
    """Write-only, newline-delimited command stream on top of a named pipe."""

    def __init__(self, fd: int, *, path: str, encoding: str = "utf-8") -> None:
        self._writer = io.open(fd, "wb", closefd=True)
        self._path = path
        self._encoding = encoding
        self._name = f"channel[{os.path.basename(path)}]"
        self._closed = False

    @property
    def path(self) -> str:
        return self._path

    def send(self, command: str, *, timeout: Optional[float] = None) -> None:
        """Write one command.

        With ``timeout``, a reader that stops draining the pipe makes this
        fail with CommandWriteError after ``timeout`` seconds instead of
        blocking.
        """

        if timeout is None:
            self.send_many((command,))
        else:
            self._send_with_deadline(command, timeout)

    def send_many(self, commands: Iterable[str]) -> None:
        if isinstance(commands, str):
            raise TypeError("commands must be an iterable of strings, not a string")
        if self._closed:
            raise CommandWriteError(f"{self._name} is closed")
        try:
            for command in commands:
                self._writer.write(f"{command}\n".encode(self._encoding))
        except (BrokenPipeError, OSError, ValueError) as exc:
            raise CommandWriteError(f"{self._name} write failed: {exc}") from exc
        finally:
            # whatever was accepted must reach the pipe before returning
            self._flush()

    def _flush(self) -> None:
        try:
            self._writer.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            raise CommandWriteError(f"{self._name} flush failed: {exc}") from exc

    def _send_with_deadline(self, command: str, timeout: float) -> None:
        if self._closed:
            raise CommandWriteError(f"{self._name} is closed")
        self._flush()
        try:
            data = memoryview(f"{command}\n".encode(self._encoding))
        except ValueError as exc:
            raise CommandWriteError(f"{self._name} write failed: {exc}") from exc
        fd = self._writer.fileno()
        deadline = time.monotonic() + timeout
        os.set_blocking(fd, False)
        try:
            while data:
                try:
                    written = os.write(fd, data)
                except BlockingIOError:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise CommandWriteError(
                            f"{self._name} write timed out after {timeout} s"
                        ) from None
                    select.select([], [fd], [], remaining)
                    continue
                except OSError as exc:
                    raise CommandWriteError(f"{self._name} write failed: {exc}") from exc
                data = data[written:]
        finally:
            os.set_blocking(fd, True)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._writer.close()
        except OSError as exc:
            # unflushed bytes after the reader went away
            _logger.warning("%s closed with undelivered data: %s", self._name, exc)

    def is_closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<CommandChannel {self._path} ({state})>"
