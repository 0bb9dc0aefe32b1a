# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
File helpers for the command line tool.

"-" means stdin/stdout. Output files are written to "<name>~" and only
renamed into place when closed, so a failed run never leaves a half
written image behind.
"""

import os
import sys
from pathlib import Path
from typing import BinaryIO, Union


class _StdinReader:
    """Binary stdin that is left open on close()."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream

    def read(self, size: int = -1) -> bytes:
        return self._stream.read(size)

    def close(self):
        pass


class _StdoutWriter:
    """Binary stdout; close() only flushes."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def write(self, data: bytes) -> int:
        return self._stream.write(data)

    def close(self):
        self._stream.flush()


class AtomicWriter:
    """
    Writes to "<path>~" and renames it to path on close().

    Used as a context manager, the temporary file is removed instead
    if the block raises.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.temp_path = self.path.with_name(self.path.name + "~")
        self._file = open(self.temp_path, "wb")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.close()
        else:
            self.discard()
        return False

    def write(self, data: bytes) -> int:
        return self._file.write(data)

    def close(self):
        if self._file.closed:
            return
        self._file.close()
        os.replace(self.temp_path, self.path)

    def discard(self):
        """Drop everything written so far."""
        if not self._file.closed:
            self._file.close()
            self.temp_path.unlink()


def open_read(arg: Union[str, Path]) -> BinaryIO:
    """Open a file (or "-" for stdin) for binary reading."""
    if str(arg) == "-":
        return _StdinReader(sys.stdin.buffer)
    return open(arg, "rb")


def open_write(arg: Union[str, Path]):
    """Open a file (or "-" for stdout) for binary writing."""
    if str(arg) == "-":
        return _StdoutWriter(sys.stdout.buffer)
    return AtomicWriter(arg)
