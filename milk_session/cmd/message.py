"""Verbosity-aware messages for the milk-session command line."""

import sys

_verbosity = 0
_header = None


def set_verbosity(verbosity: int) -> None:
    global _verbosity
    _verbosity = int(verbosity)


def set_header(header: str | None) -> None:
    global _header
    _header = header


def message(verbosity: int, *args) -> None:
    """Print to stderr if the current verbosity is at least ``verbosity``.

    Level 0 messages are shown unless -q was given.
    """

    if _verbosity < verbosity:
        return
    if _header is not None:
        print(f"{_header}:", *args, file=sys.stderr)
    else:
        print(*args, file=sys.stderr)


def message_and_exit(*args, exit_code: int = 1):
    """Print unconditionally and exit."""

    from .exceptions import MilkSessionSystemExit

    if _header is not None:
        print(f"{_header}:", *args, file=sys.stderr)
    else:
        print(*args, file=sys.stderr)
    raise MilkSessionSystemExit(exit_code)
