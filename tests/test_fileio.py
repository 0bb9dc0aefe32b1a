# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Tests for file helpers."""

from io import BytesIO
from unittest.mock import patch

import pytest

from nuvoprog.fileio import AtomicWriter, open_read, open_write


class TestAtomicWriter:
    """Tests for AtomicWriter."""

    def test_renames_on_close(self, tmp_path):
        """Data only appears under the final name once closed."""
        path = tmp_path / "out.ihx"
        w = AtomicWriter(path)
        w.write(b"data")
        assert not path.exists()
        assert (tmp_path / "out.ihx~").exists()

        w.close()
        assert path.read_bytes() == b"data"
        assert not (tmp_path / "out.ihx~").exists()

    def test_close_twice(self, tmp_path):
        """Second close is a no-op."""
        w = AtomicWriter(tmp_path / "out.ihx")
        w.close()
        w.close()

    def test_replaces_existing(self, tmp_path):
        """An existing file is replaced."""
        path = tmp_path / "out.ihx"
        path.write_bytes(b"old")
        with AtomicWriter(path) as w:
            w.write(b"new")
        assert path.read_bytes() == b"new"

    def test_error_discards(self, tmp_path):
        """An exception leaves the original file untouched."""
        path = tmp_path / "out.ihx"
        path.write_bytes(b"old")
        with pytest.raises(RuntimeError):
            with AtomicWriter(path) as w:
                w.write(b"partial")
                raise RuntimeError("test")
        assert path.read_bytes() == b"old"
        assert not (tmp_path / "out.ihx~").exists()


class TestOpen:
    """Tests for open_read / open_write."""

    def test_open_read_file(self, tmp_path):
        """Paths are opened for binary reading."""
        path = tmp_path / "in.ihx"
        path.write_bytes(b":00000001FF\n")
        with open_read(path) as f:
            assert f.read() == b":00000001FF\n"

    def test_open_read_stdin(self):
        """'-' reads stdin and close() leaves it open."""
        stdin = BytesIO(b"abc")
        with patch("nuvoprog.fileio.sys") as mock_sys:
            mock_sys.stdin.buffer = stdin
            f = open_read("-")
        assert f.read() == b"abc"
        f.close()
        assert not stdin.closed

    def test_open_write_stdout(self):
        """'-' writes stdout and close() only flushes."""
        stdout = BytesIO()
        with patch("nuvoprog.fileio.sys") as mock_sys:
            mock_sys.stdout.buffer = stdout
            with open_write("-") as f:
                f.write(b"abc")
        assert stdout.getvalue() == b"abc"
        assert not stdout.closed

    def test_open_write_file(self, tmp_path):
        """Paths get an AtomicWriter."""
        w = open_write(tmp_path / "out.ihx")
        assert isinstance(w, AtomicWriter)
        w.close()
