import os
import random
import re
import threading
import time

import pytest

from milk_session import SessionConfig
from milk_session.errors import ChannelCreationError, ChannelOpenError, CommandWriteError
from milk_session.process import (
    CommandChannel,
    create_fifo,
    make_fifo_path,
    open_write_end,
    remove_fifo,
)

from helpers import fill_pipe


def test_make_fifo_path():
    config = SessionConfig()
    path = make_fifo_path(config, random.Random(1234))
    assert re.fullmatch(r"/tmp/\.fifo\.\d{6,7}", path)
    assert path == make_fifo_path(config, random.Random(1234))


def test_make_fifo_path_custom_location(tmp_path):
    config = SessionConfig(fifo_dir=str(tmp_path), fifo_prefix="milk-")
    path = make_fifo_path(config)
    assert os.path.dirname(path) == str(tmp_path)
    assert os.path.basename(path).startswith("milk-")


def test_create_and_remove_fifo(tmp_path):
    path = str(tmp_path / "pipe")
    create_fifo(path)
    assert os.path.exists(path)
    with pytest.raises(ChannelCreationError):
        create_fifo(path)
    assert remove_fifo(path)
    assert not remove_fifo(path)


def _reader(path, sink):
    with open(path, "rb") as f:
        sink.append(f.read())


def test_channel_writes_lines_in_order(tmp_path):
    path = str(tmp_path / "pipe")
    create_fifo(path)
    received = []
    reader = threading.Thread(target=_reader, args=(path, received))
    reader.start()
    fd = open_write_end(path, reader_alive=reader.is_alive, timeout=5.0)
    channel = CommandChannel(fd, path=path)
    channel.send("first")
    channel.send_many(["second", "ünicode third"])
    channel.close()
    assert channel.is_closed()
    reader.join(timeout=5.0)
    assert received == ["first\nsecond\nünicode third\n".encode()]
    with pytest.raises(CommandWriteError):
        channel.send("too late")


def test_open_write_end_without_reader(tmp_path):
    path = str(tmp_path / "pipe")
    create_fifo(path)
    with pytest.raises(ChannelOpenError):
        open_write_end(path, reader_alive=lambda: False)
    with pytest.raises(ChannelOpenError):
        open_write_end(path, reader_alive=lambda: True, timeout=0.1)


def test_open_write_end_missing_path(tmp_path):
    with pytest.raises(ChannelOpenError):
        open_write_end(str(tmp_path / "missing"), reader_alive=lambda: True)


def _read_one_line(path, sink):
    with open(path, "rb") as f:
        sink.append(f.readline())


def test_write_after_reader_left(tmp_path):
    path = str(tmp_path / "pipe")
    create_fifo(path)
    received = []
    reader = threading.Thread(target=_read_one_line, args=(path, received))
    reader.start()
    fd = open_write_end(path, reader_alive=reader.is_alive, timeout=5.0)
    channel = CommandChannel(fd, path=path)
    channel.send("only")
    reader.join(timeout=5.0)
    assert received == [b"only\n"]
    with pytest.raises(CommandWriteError):
        channel.send("nobody listening")
    channel.close()
    assert channel.is_closed()


def _read_lines(path, sink, count):
    with open(path, "rb") as f:
        for _ in range(count):
            sink.append(f.readline())


def _open_channel_with_reader(path, target, *args):
    create_fifo(path)
    reader = threading.Thread(target=target, args=(path, *args))
    reader.start()
    fd = open_write_end(path, reader_alive=reader.is_alive, timeout=5.0)
    return CommandChannel(fd, path=path), reader


def test_batch_interrupted_by_iterable_is_flushed(tmp_path):
    def commands():
        yield "first"
        yield "second"
        raise KeyError("no third")

    received = []
    channel, reader = _open_channel_with_reader(
        str(tmp_path / "pipe"), _read_lines, received, 2
    )
    with pytest.raises(KeyError):
        channel.send_many(commands())
    # the reader only finishes if both lines reached the pipe
    reader.join(timeout=5.0)
    assert received == [b"first\n", b"second\n"]
    channel.close()


def test_batch_with_unencodable_command_is_flushed(tmp_path):
    received = []
    channel, reader = _open_channel_with_reader(
        str(tmp_path / "pipe"), _read_lines, received, 1
    )
    with pytest.raises(CommandWriteError):
        channel.send_many(["good", "bad \udcff"])
    reader.join(timeout=5.0)
    assert received == [b"good\n"]
    channel.close()


def test_batch_rejects_plain_string(tmp_path):
    received = []
    channel, reader = _open_channel_with_reader(
        str(tmp_path / "pipe"), _read_lines, received, 1
    )
    with pytest.raises(TypeError):
        channel.send_many("mk3Dim out1 1 1 1")
    channel.send("mk3Dim out1 1 1 1")
    reader.join(timeout=5.0)
    assert received == [b"mk3Dim out1 1 1 1\n"]
    channel.close()


def _hold_open(path, release):
    with open(path, "rb"):
        release.wait(10.0)


def test_send_with_timeout_on_full_pipe(tmp_path):
    path = str(tmp_path / "pipe")
    release = threading.Event()
    channel, reader = _open_channel_with_reader(path, _hold_open, release)
    try:
        assert fill_pipe(path) > 0
        start = time.monotonic()
        with pytest.raises(CommandWriteError, match="timed out"):
            channel.send("exit", timeout=0.2)
        assert time.monotonic() - start < 5.0
    finally:
        release.set()
        reader.join(timeout=5.0)
        channel.close()


def test_send_with_timeout_when_pipe_has_room(tmp_path):
    received = []
    channel, reader = _open_channel_with_reader(
        str(tmp_path / "pipe"), _read_lines, received, 2
    )
    channel.send_many(["queued"])
    channel.send("exit", timeout=1.0)
    reader.join(timeout=5.0)
    assert received == [b"queued\n", b"exit\n"]
    channel.close()
