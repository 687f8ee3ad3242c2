import os
import stat
import sys

import pytest

from milk_session import SessionConfig

TESTS_DIR = os.path.dirname(__file__)
FAKE_MILK = os.path.join(TESTS_DIR, "fake_milk.py")


@pytest.fixture(autouse=True)
def _clean_milk_env(monkeypatch):
    """Keep MILK_SESSION_* settings of the developer's shell out of the tests."""

    for name in list(os.environ):
        if name.startswith("MILK_SESSION_"):
            monkeypatch.delenv(name)


@pytest.fixture
def fifo_dir(tmp_path):
    path = tmp_path / "fifos"
    path.mkdir()
    return path


@pytest.fixture
def fake_config(fifo_dir):
    """Config running the stand-in engine, with timeouts so a hang fails the test."""

    return SessionConfig(
        command=(sys.executable, FAKE_MILK),
        fifo_dir=str(fifo_dir),
        open_timeout=10.0,
        close_timeout=10.0,
    )


@pytest.fixture
def fake_milk_executable(tmp_path):
    """A single executable wrapping the stand-in engine, for --executable."""

    path = tmp_path / "milk"
    path.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_MILK}" "$@"\n')
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)
