"""Read the tail of a log file without loading the whole file."""

import os
from pathlib import Path

BLOCK_SIZE = 64 * 1024


def tail_lines(path: Path, lines: int, block_size: int = BLOCK_SIZE) -> str:
    """
    Return the last `lines` lines of a file, like `tail -n`.

    The file size is captured once up front, so data appended by a process
    still writing to the file while we read is ignored.
    """
    if lines <= 0:
        return ""

    with open(path, "rb") as f:
        end = f.seek(0, os.SEEK_END)
        pos = end
        data = b""
        # One newline more than requested guarantees the first kept line is whole
        while pos > 0 and data.count(b"\n") <= lines:
            step = min(block_size, pos)
            pos -= step
            f.seek(pos)
            data = f.read(step) + data

    trailer = b""
    if data.endswith(b"\n"):
        data = data[:-1]
        trailer = b"\n"
    kept = data.split(b"\n")[-lines:]
    return (b"\n".join(kept) + trailer).decode("utf-8", errors="replace")
