"""Spawning and reaping of milk session processes."""

from __future__ import annotations

import logging
import subprocess
from typing import Optional

from ..config import SessionConfig
from ..errors import ProcessSpawnError

_logger = logging.getLogger(__name__)

# Grace period for each escalation step once close_timeout has expired
ESCALATION_TIMEOUT = 1.0


def spawn_session_process(config: SessionConfig, fifo_path: str) -> subprocess.Popen:
    """Launch the session process reading commands from ``fifo_path``.

    Its standard streams go to the null device; the channel is the only way
    to talk to it.
    """

    argv = config.argv(fifo_path)
    try:
        process = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            cwd=config.cwd,
            env=config.process_env(),
        )
    except (OSError, ValueError) as exc:
        raise ProcessSpawnError(f"Failed to spawn {argv[0]!r}: {exc}") from exc
    _logger.debug("Spawned %s (pid %s)", " ".join(argv), process.pid)
    return process


def reap_process(
    process: subprocess.Popen, *, timeout: Optional[float] = None
) -> Optional[int]:
    """Wait for ``process`` to exit and return its exit status.

    Without a timeout this blocks until the process exits. With one, a
    process still alive afterwards is terminated, and then killed.
    Returns None only if even the kill could not be observed.
    """

    try:
        return process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        _logger.warning(
            "Session process %s still running after %s s, terminating",
            process.pid,
            timeout,
        )
    process.terminate()
    try:
        return process.wait(timeout=ESCALATION_TIMEOUT)
    except subprocess.TimeoutExpired:
        _logger.warning("Session process %s ignored SIGTERM, killing", process.pid)
    process.kill()
    try:
        return process.wait(timeout=ESCALATION_TIMEOUT)
    except subprocess.TimeoutExpired:
        _logger.error("Session process %s could not be reaped", process.pid)
        return None


def kill_process(process: subprocess.Popen) -> None:
    """Kill and reap a process that never became usable."""

    if process.poll() is None:
        process.kill()
    try:
        process.wait(timeout=ESCALATION_TIMEOUT)
    except subprocess.TimeoutExpired:
        _logger.error("Session process %s could not be reaped", process.pid)
