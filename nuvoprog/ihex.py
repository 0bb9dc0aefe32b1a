# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Intel HEX reader and writer.

Records are decoded in a single forward pass over a binary stream.
Reader folds address extension records into absolute Blocks; Writer
does the reverse, emitting Extended Linear Address records whenever a
chunk leaves the current 64 KiB segment.

Example usage:
    with open("image.ihx", "rb") as f:
        for block in Reader(f):
            print(f"0x{block.address:08x}: {len(block.data)} bytes")

    with Writer(open("out.ihx", "wb")) as w:
        w.write(0x0000, firmware)
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import BinaryIO, Optional

from .errors import (
    ChecksumError,
    InvalidHexError,
    InvalidPrefixError,
    InvalidRecordTypeError,
    InvalidTerminatorError,
    RecordLengthError,
    TruncatedRecordError,
)

# Largest chunk emitted per Data record
CHUNK_SIZE = 32

_LINE_ENDINGS = (b"\r", b"\n")
_HEX_DIGITS = b"0123456789ABCDEF"


class RecordType(IntEnum):
    """Intel HEX record types."""
    DATA = 0
    EOF = 1
    EXTENDED_SEGMENT_ADDRESS = 2
    START_SEGMENT_ADDRESS = 3
    EXTENDED_LINEAR_ADDRESS = 4
    START_LINEAR_ADDRESS = 5

    def __str__(self) -> str:
        return self.name


@dataclass
class Record:
    """A single Intel HEX record."""
    type: RecordType
    address: int = 0
    data: bytes = b""

    @classmethod
    def data_record(cls, address: int, data: bytes) -> "Record":
        return cls(RecordType.DATA, address, bytes(data))

    @classmethod
    def eof_record(cls) -> "Record":
        return cls(RecordType.EOF)

    @classmethod
    def extended_segment_address(cls, segment: int) -> "Record":
        return cls(RecordType.EXTENDED_SEGMENT_ADDRESS, 0, segment.to_bytes(2, "big"))

    @classmethod
    def extended_linear_address(cls, upper: int) -> "Record":
        return cls(RecordType.EXTENDED_LINEAR_ADDRESS, 0, upper.to_bytes(2, "big"))


@dataclass
class Block:
    """A run of bytes at an absolute address."""
    address: int
    data: bytes


def _hex_nibble(char: int) -> int:
    if 0x30 <= char <= 0x39:          # 0-9
        return char - 0x30
    if 0x41 <= char <= 0x46:          # A-F
        return char - 0x41 + 10
    if 0x61 <= char <= 0x66:          # a-f
        return char - 0x61 + 10
    raise InvalidHexError()


def _read_hex_byte(stream: BinaryIO) -> int:
    pair = stream.read(2)
    if len(pair) != 2:
        raise TruncatedRecordError()
    return _hex_nibble(pair[0]) << 4 | _hex_nibble(pair[1])


def read_record(stream: BinaryIO) -> Optional[Record]:
    """
    Decode one record from a binary stream.

    Args:
        stream: Binary stream positioned at (or before) a record

    Returns:
        The decoded Record, or None if the stream ended before another
        record started

    Raises:
        FormatError: If the record is malformed
    """
    while True:
        char = stream.read(1)
        if not char:
            return None
        if char in _LINE_ENDINGS:
            continue
        if char == b":":
            break
        raise InvalidPrefixError()

    length = _read_hex_byte(stream)
    addr_hi = _read_hex_byte(stream)
    addr_lo = _read_hex_byte(stream)
    rtype = _read_hex_byte(stream)
    checksum = length + addr_hi + addr_lo + rtype

    data = bytearray()
    for _ in range(length):
        byte = _read_hex_byte(stream)
        checksum += byte
        data.append(byte)

    checksum += _read_hex_byte(stream)
    if checksum & 0xFF:
        raise ChecksumError()

    char = stream.read(1)
    if char and char not in _LINE_ENDINGS:
        raise InvalidTerminatorError()

    try:
        record_type = RecordType(rtype)
    except ValueError:
        raise InvalidRecordTypeError(f"Unknown record type 0x{rtype:02x}") from None

    return Record(record_type, addr_hi << 8 | addr_lo, bytes(data))


def encode_record(record: Record) -> bytes:
    """
    Encode a record as one line of text.

    Args:
        record: Record to encode (payload of at most 255 bytes)

    Returns:
        ASCII bytes including the trailing newline
    """
    if len(record.data) > 0xFF:
        raise ValueError(f"Record payload too long: {len(record.data)} bytes")

    raw = bytes([
        len(record.data),
        (record.address >> 8) & 0xFF,
        record.address & 0xFF,
        record.type,
    ]) + record.data
    raw += bytes([-sum(raw) & 0xFF])

    line = bytearray(b":")
    for byte in raw:
        line.append(_HEX_DIGITS[byte >> 4])
        line.append(_HEX_DIGITS[byte & 0xF])
    line.append(0x0A)
    return bytes(line)


def write_record(sink: BinaryIO, record: Record) -> None:
    """Encode a record and write it to a binary sink."""
    sink.write(encode_record(record))


class Reader:
    """
    Iterator over the data Blocks of an Intel HEX stream.

    Iteration stops at the EOF record or at the end of the stream, and
    does not restart.
    """

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self._base = 0
        self._eof = False

    def __iter__(self):
        return self

    def __next__(self) -> Block:
        if self._eof:
            raise StopIteration

        while True:
            record = read_record(self._stream)
            if record is None:
                self._eof = True
                raise StopIteration

            if record.type == RecordType.DATA:
                return Block(self._base + record.address, record.data)

            elif record.type == RecordType.EOF:
                self._eof = True
                raise StopIteration

            elif record.type == RecordType.EXTENDED_SEGMENT_ADDRESS:
                if len(record.data) != 2:
                    raise RecordLengthError()
                self._base = record.data[0] << 12 | record.data[1] << 4

            elif record.type == RecordType.EXTENDED_LINEAR_ADDRESS:
                if len(record.data) != 2:
                    raise RecordLengthError()
                self._base = record.data[0] << 24 | record.data[1] << 16

            # Start address records carry nothing we need


class Writer:
    """
    Writes Blocks to a binary sink as Intel HEX.

    Can be used as a context manager:
        with Writer(sink) as w:
            w.write(0, data)
    """

    def __init__(self, sink: BinaryIO):
        self._sink = sink
        self._segment = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.close()
        return False

    def _emit(self, record: Record):
        if self._sink is None:
            raise ValueError("Writer is closed")
        write_record(self._sink, record)

    def _write(self, address: int, data: bytes):
        if not data:
            return

        offset = address - self._segment
        if not 0 <= offset <= 0xFFFF:
            self._segment = address & 0xFFFF0000
            offset = address - self._segment
            self._emit(Record.extended_linear_address(self._segment >> 16))

        self._emit(Record.data_record(offset, data))

    def write(self, address: int, data: bytes) -> None:
        """
        Write data starting at an absolute address.

        Data is split into records aligned to 32 byte boundaries.

        Args:
            address: 32-bit start address
            data: Bytes to write
        """
        data = bytes(data)

        lead = CHUNK_SIZE - (address % CHUNK_SIZE)
        if address % CHUNK_SIZE and len(data) > lead:
            self._write(address, data[:lead])
            address += lead
            data = data[lead:]

        while len(data) > CHUNK_SIZE:
            self._write(address, data[:CHUNK_SIZE])
            address += CHUNK_SIZE
            data = data[CHUNK_SIZE:]

        self._write(address, data)

    def write_block(self, block: Block) -> None:
        """Write a Block."""
        self.write(block.address, block.data)

    def close(self) -> None:
        """Write the EOF record and close the sink."""
        if self._sink is None:
            return
        sink = self._sink
        try:
            write_record(sink, Record.eof_record())
        finally:
            self._sink = None
            sink.close()
