# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Shared test fixtures."""

import struct

import pytest

from nuvoprog.device import Device
from nuvoprog.errors import TransportError
from nuvoprog.frame import V1Framer
from nuvoprog.protocol import CommandType, DeviceID, MemorySpace, ProductID
from nuvoprog.targets import N76E003


class MockHandle:
    """Frame transport that replays canned frames."""

    def __init__(self, frames=None, path="usb:001:002"):
        self.frames = list(frames or [])
        self.written = []
        self.closed = False
        self.path = path
        # Override to simulate short writes
        self.write_size = None

    def write(self, data):
        self.written.append(bytes(data))
        if self.write_size is not None:
            return self.write_size
        return len(data)

    def read(self, size):
        if not self.frames:
            raise TransportError("Timeout waiting for response")
        return self.frames.pop(0)

    def close(self):
        self.closed = True


class FakeProgrammer:
    """
    Frame transport that behaves like a Nu-Link with an N76E003 attached.

    Requests are decoded and answered immediately; every command is
    recorded in `log` as (command, body) for later inspection.
    """

    def __init__(self, firmware_version=7014, device_id=DeviceID.N76E003,
                 framer=None, path="usb:001:002"):
        self.framer = framer or V1Framer()
        self.firmware_version = firmware_version
        self.device_id = device_id
        self.path = path
        self.flash = bytearray(b"\xff" * 0x10000)
        self.config = bytearray(b"\xff" * 32)
        self.log = []
        self.closed = False
        # Commands answered with a wrong echo
        self.fail = set()
        self._pending = []

    def write(self, data):
        frame = self.framer.unframe(bytes(data))
        response = self._handle(frame.body)
        self._pending.append(bytes(self.framer.frame(frame.sequence_number, response)))
        return len(data)

    def read(self, size):
        if not self._pending:
            raise TransportError("Timeout waiting for response")
        return self._pending.pop(0)

    def close(self):
        self.closed = True

    def commands(self):
        return [command for command, _ in self.log]

    def resets(self):
        return [
            struct.unpack("<III", body)
            for command, body in self.log
            if command == CommandType.RESET
        ]

    def _memory(self, space):
        return self.config if space == MemorySpace.CONFIG else self.flash

    def _handle(self, body):
        if body == b"\xff" * len(body):
            self.log.append((CommandType.GET_VERSION, b""))
            return struct.pack("<IIIHH", self.firmware_version, ProductID.NULINK_ME, 0, 0, 0)

        command = struct.unpack_from("<I", body)[0]
        self.log.append((command, body[4:]))
        echo = struct.pack("<I", command ^ 0xFF if command in self.fail else command)

        if command == CommandType.READ_MEMORY:
            address, space, length = struct.unpack_from("<HHI", body, 4)
            return bytes(self._memory(space)[address:address + length])

        if command == CommandType.WRITE_MEMORY:
            address, space, length = struct.unpack_from("<HHI", body, 4)
            self._memory(space)[address:address + length] = body[12:12 + length]
            return echo

        if command == CommandType.ERASE_FLASH_CHIP:
            self.flash[:] = b"\xff" * len(self.flash)
            self.config[:] = b"\xff" * len(self.config)
            return echo

        if command == CommandType.CHECK_ID:
            return echo + struct.pack("<I", self.device_id)

        return echo


@pytest.fixture
def target():
    return N76E003


@pytest.fixture
def programmer():
    return FakeProgrammer()


@pytest.fixture
def device(programmer):
    return Device(programmer, programmer.framer)
