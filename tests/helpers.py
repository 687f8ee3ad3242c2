import os


def fill_pipe(path):
    """Write filler into the FIFO at ``path`` until its buffer is full.

    A reader must have the FIFO open. Returns the number of bytes written.
    """

    fd = os.open(path, os.O_WRONLY | os.O_NONBLOCK)
    total = 0
    try:
        for chunk in (b"#" * 4095 + b"\n", b"\n"):
            while True:
                try:
                    total += os.write(fd, chunk)
                except BlockingIOError:
                    break
    finally:
        os.close(fd)
    return total
