# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Fixed-size USB frames used by Nu-Link programmers.

Every message travels in a frame of a fixed size:

    V1 (Nu-Link, 64 bytes):
        [seq:1][len:1][body:<=62][zero padding]
    V2 (Nu-Link2, 1024 bytes):
        [seq:1][len:2 LE][body:<=1021][zero padding]

Callers only use the Framer interface; the layout is chosen per
programmer model by the device table in device.py.
"""

import struct
from abc import ABC, abstractmethod

from .errors import BodyTooLongError, FrameLengthError, ProtocolError


class Frame:
    """A received or outgoing frame."""

    def __init__(self, raw: bytes, sequence_number: int, body_offset: int, body_length: int):
        self._raw = bytes(raw)
        self._seq = sequence_number
        self._offset = body_offset
        self._length = body_length

    @property
    def sequence_number(self) -> int:
        return self._seq

    @property
    def body_length(self) -> int:
        return self._length

    @property
    def body(self) -> bytes:
        return self._raw[self._offset:self._offset + self._length]

    @property
    def command(self) -> int:
        """Command code at the start of the body."""
        body = self.body
        if len(body) < 4:
            raise ProtocolError("Frame too short to contain command")
        return struct.unpack_from("<I", body)[0]

    def __bytes__(self) -> bytes:
        return self._raw

    def __len__(self) -> int:
        return len(self._raw)

    def __repr__(self) -> str:
        return f"Frame(seq={self._seq}, body={self.body.hex()})"


class Framer(ABC):
    """Encodes and decodes frames of one layout."""

    @property
    @abstractmethod
    def frame_length(self) -> int:
        """Total size of every frame."""

    @property
    @abstractmethod
    def max_body_length(self) -> int:
        """Largest body a frame can carry."""

    @abstractmethod
    def frame(self, sequence_number: int, body: bytes) -> Frame:
        """Wrap a body in a frame."""

    @abstractmethod
    def unframe(self, raw: bytes) -> Frame:
        """Parse a received frame."""


class V1Framer(Framer):
    """Nu-Link (v1) framer: 64 byte frames with an 8-bit body length."""

    @property
    def frame_length(self) -> int:
        return 64

    @property
    def max_body_length(self) -> int:
        return 62

    def frame(self, sequence_number: int, body: bytes) -> Frame:
        if len(body) > self.max_body_length:
            raise BodyTooLongError()

        buf = bytearray(self.frame_length)
        buf[0] = sequence_number
        buf[1] = len(body)
        buf[2:2 + len(body)] = body
        return Frame(buf, sequence_number, 2, len(body))

    def unframe(self, raw: bytes) -> Frame:
        if len(raw) != self.frame_length:
            raise FrameLengthError()

        if raw[1] > self.max_body_length:
            raise BodyTooLongError()

        return Frame(raw, raw[0], 2, raw[1])


class V2Framer(Framer):
    """Nu-Link2 framer: 1024 byte frames with a 16-bit body length."""

    @property
    def frame_length(self) -> int:
        return 1024

    @property
    def max_body_length(self) -> int:
        return 1021

    def frame(self, sequence_number: int, body: bytes) -> Frame:
        if len(body) > self.max_body_length:
            raise BodyTooLongError()

        buf = bytearray(self.frame_length)
        struct.pack_into("<BH", buf, 0, sequence_number, len(body))
        buf[3:3 + len(body)] = body
        return Frame(buf, sequence_number, 3, len(body))

    def unframe(self, raw: bytes) -> Frame:
        if len(raw) != self.frame_length:
            raise FrameLengthError()

        sequence_number, length = struct.unpack_from("<BH", raw)
        if length > self.max_body_length:
            raise BodyTooLongError()

        return Frame(raw, sequence_number, 3, length)
