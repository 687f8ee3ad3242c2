"""Command-line milk-session executable script.

Runs a script of milk commands through one session, then tears the session
down, so that every command has completed when the tool exits.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Iterable, TextIO

from tqdm import tqdm

from milk_session.config import SessionConfig
from milk_session.errors import SessionError
from milk_session.session import open_session

from .exceptions import MilkSessionSystemExit
from .message import message as msg, message_and_exit as err, set_header, set_verbosity


def parse_script(lines: Iterable[str]) -> list[str]:
    """Return the commands in ``lines``, skipping blank lines and # comments."""

    commands = []
    for line in lines:
        command = line.strip()
        if not command or command.startswith("#"):
            continue
        commands.append(command)
    return commands


def _read_scripts(scripts: list[str], stdin: TextIO) -> list[str]:
    if not scripts:
        scripts = ["-"]
    commands = []
    for script in scripts:
        if script == "-":
            commands += parse_script(stdin)
            continue
        try:
            with open(script, encoding="utf-8") as f:
                commands += parse_script(f)
        except OSError as exc:
            err(f"Cannot read script '{script}': {exc}")
    return commands


def _configure_logging(*, debug: bool, verbose: bool) -> None:
    logging.basicConfig()
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.ERROR
    logging.getLogger("milk_session").setLevel(level)


def _build_config(args: argparse.Namespace) -> SessionConfig:
    overrides = {}
    if args.executable:
        overrides["command"] = (args.executable,)
    if args.fifo_dir:
        overrides["fifo_dir"] = args.fifo_dir
    if args.cwd:
        overrides["cwd"] = args.cwd
    if args.open_timeout is not None:
        overrides["open_timeout"] = args.open_timeout
    if args.close_timeout is not None:
        overrides["close_timeout"] = args.close_timeout
    return SessionConfig.from_env(**overrides)


def _main(argv: list[str] | None = None, stdin: TextIO | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="milk-session",
        description="Run a script of commands through a milk session",
    )
    parser.add_argument(
        "scripts",
        nargs="*",
        metavar="SCRIPT",
        help="Files with one command per line. '-' or nothing reads stdin",
    )
    parser.add_argument(
        "-v",
        dest="verbosity",
        help="""Verbose mode.
    Multiple -v options increase the verbosity. The maximum is 2""",
        action="count",
        default=0,
    )
    parser.add_argument(
        "-q", dest="verbosity", help="Quiet mode", action="store_const", const=-1
    )
    parser.add_argument("--executable", help="Session executable (default: milk)")
    parser.add_argument("--fifo-dir", dest="fifo_dir", help="Directory for the pipe")
    parser.add_argument("--cwd", help="Working directory of the session process")
    parser.add_argument(
        "--open-timeout",
        dest="open_timeout",
        type=float,
        help="Seconds to wait for the session to open its pipe",
    )
    parser.add_argument(
        "--close-timeout",
        dest="close_timeout",
        type=float,
        help="Seconds to wait for the session to exit before killing it",
    )
    parser.add_argument(
        "--progress", help="Show a progress bar while sending", action="store_true"
    )
    parser.add_argument(
        "--dry-run",
        dest="dry_run",
        help="Print the commands instead of running them",
        action="store_true",
    )
    parser.add_argument(
        "--verbose",
        help="Verbose mode, setting the milk_session logger to INFO",
        action="store_true",
    )
    parser.add_argument(
        "--debug",
        help="Debugging mode, setting the milk_session logger to DEBUG",
        action="store_true",
    )

    args = parser.parse_args(argv)
    set_header("milk-session")
    set_verbosity(args.verbosity)
    _configure_logging(debug=args.debug, verbose=args.verbose)

    commands = _read_scripts(args.scripts, stdin if stdin is not None else sys.stdin)
    if args.dry_run:
        for command in commands:
            print(command)
        return 0

    try:
        config = _build_config(args)
    except ValueError as exc:
        err(str(exc))

    try:
        with open_session(config) as session:
            msg(1, f"Session {session.pid} listening on {session.fifo_path}")
            if args.progress:
                for command in tqdm(commands, unit="cmd", file=sys.stderr):
                    session.send(command)
            else:
                session.send_many(commands)
            msg(2, f"Sent {len(commands)} commands, waiting for the session to exit")
        returncode = session.returncode
    except SessionError as exc:
        msg(0, str(exc))
        return 1
    msg(1, f"Session exited with status {returncode}")
    return 0


def main(argv: list[str] | None = None) -> int:
    try:
        return _main(argv)
    except MilkSessionSystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 1


if __name__ == "__main__":
    sys.exit(main())
