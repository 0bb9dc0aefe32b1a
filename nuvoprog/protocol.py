# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Nu-Link command definitions and serialization.

A command body is a 32-bit little-endian command code followed by a
fixed little-endian structure. Most responses echo the command code in
their first four bytes.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum

from .errors import ProtocolError, ResponseMismatchError


class CommandType(IntEnum):
    """Command codes."""
    WRITE_MEMORY = 0xA0
    READ_MEMORY = 0xA1
    SET_CONFIG = 0xA2
    CHECK_ID = 0xA3
    ERASE_FLASH_CHIP = 0xA4
    RESET = 0xE2
    GET_VERSION = 0xFF


# Oldest programmer firmware known to work
FIRMWARE_VERSION_REQUIRED = 6069

FLAG_IS_NULINK_PRO = 0x00000001


class ProductID(IntEnum):
    """Programmer product IDs reported by get-version."""
    NULINK_ME = 0x00550501

    def __str__(self) -> str:
        return _PRODUCT_NAMES[self]


_PRODUCT_NAMES = {
    ProductID.NULINK_ME: "Nu-Link-Me",
}


class ChipFamily(IntEnum):
    """Target chip families understood by the programmer."""
    # Taken from Nuvoton's OpenOCD patch
    M2351 = 0x321
    # 1T 8051 family, so far only seen with the N76E003
    N76E003 = 0x800

    def __str__(self) -> str:
        return self.name


class DeviceID(IntEnum):
    """
    Target device IDs returned by check-id.

    Laid out as 0x00CCDDDD (company ID, device ID), matching the IAP
    registers.
    """
    N76E003 = 0xDA3650

    def __str__(self) -> str:
        return self.name


class ResetType(IntEnum):
    """Reset types (constants from the OpenOCD patch)."""
    AUTO = 0
    HW = 1
    SYS_RESET_REQ = 2
    VEC_RESET = 3
    FAST_RESCUE = 4
    NONE_NULINK = 5
    NONE2_8051T1_ONLY = 6

    def __str__(self) -> str:
        return self.name


class ResetConnType(IntEnum):
    """Connection type after reset (constants from the OpenOCD patch)."""
    NORMAL = 0
    PRE_RESET = 1
    UNDER_RESET = 2
    NONE = 3
    DISCONNECT = 4
    ICP_MODE = 5

    def __str__(self) -> str:
        return self.name


class ResetMode(IntEnum):
    """Reset mode."""
    EXT_MODE = 0
    # Used when disconnecting
    MODE1 = 1

    def __str__(self) -> str:
        return self.name


class MemorySpace(IntEnum):
    """Memory space selector for read/write commands."""
    PROGRAM = 0x0000
    CONFIG = 0x0003

    def __str__(self) -> str:
        return self.name.lower()


def _describe(enum_type, value: int, width: int = 8) -> str:
    try:
        return str(enum_type(value))
    except ValueError:
        return f"0x{value:0{width}x}"


@dataclass
class VersionInfo:
    """Response to get-version."""
    firmware_version: int
    product_id: int
    flags: int
    # Nu-Link Pro only, millivolts
    target_voltage: int = 0
    usb_voltage: int = 0

    @property
    def is_pro(self) -> bool:
        return bool(self.flags & FLAG_IS_NULINK_PRO)

    def __str__(self) -> str:
        s = f"{_describe(ProductID, self.product_id):>16} - Firmware Version {self.firmware_version}"
        if self.is_pro:
            s += (f" (Target voltage: {self.target_voltage / 1000:f}; "
                  f"USB voltage {self.usb_voltage / 1000:f})")
        return s


@dataclass
class SessionConfig:
    """Body of set-config."""
    clock: int = 1000
    chip_family: int = ChipFamily.N76E003
    voltage: int = 3300
    power_target: int = 0
    usb_func_e: int = 0


@dataclass
class Reset:
    """Body of a reset command."""
    type: ResetType
    connection: ResetConnType
    mode: ResetMode

    def __str__(self) -> str:
        return f"{self.type}/{self.connection}/{self.mode}"


_VERSION = struct.Struct("<IIIHH")
_SESSION_CONFIG = struct.Struct("<IIIII")
_RESET = struct.Struct("<III")
_MEMORY = struct.Struct("<HHI")


def encode_command(command: CommandType, fields: bytes = b"") -> bytes:
    """Prefix a command body with its command code."""
    return struct.pack("<I", command) + fields


def encode_get_version(max_body_length: int) -> bytes:
    """Encode a get-version request (a body of 0xFF padding)."""
    return b"\xff" * max_body_length


def encode_set_config(config: SessionConfig) -> bytes:
    """Encode a set-config command."""
    return encode_command(CommandType.SET_CONFIG, _SESSION_CONFIG.pack(
        config.clock,
        config.chip_family,
        config.voltage,
        config.power_target,
        config.usb_func_e,
    ))


def encode_reset(reset: Reset) -> bytes:
    """Encode a reset command."""
    return encode_command(CommandType.RESET, _RESET.pack(reset.type, reset.connection, reset.mode))


def encode_check_id() -> bytes:
    """Encode a check-id command."""
    return encode_command(CommandType.CHECK_ID, struct.pack("<I", 0))


def encode_read_memory(space: MemorySpace, address: int, length: int) -> bytes:
    """Encode a read-memory command."""
    return encode_command(CommandType.READ_MEMORY, _MEMORY.pack(address, space, length))


def encode_write_memory(space: MemorySpace, address: int, data: bytes) -> bytes:
    """Encode a write-memory command; data follows the fixed header."""
    return encode_command(CommandType.WRITE_MEMORY, _MEMORY.pack(address, space, len(data))) + bytes(data)


def encode_erase_flash_chip() -> bytes:
    """Encode an erase-flash-chip command."""
    return encode_command(CommandType.ERASE_FLASH_CHIP)


def check_response(command: CommandType, response: bytes) -> None:
    """
    Verify that a response echoes the command it answers.

    Raises:
        ProtocolError: If the response is too short
        ResponseMismatchError: If the command code differs
    """
    if len(response) < 4:
        raise ProtocolError(f"Response too short for command 0x{command:08x}")

    code = struct.unpack_from("<I", response)[0]
    if code != command:
        raise ResponseMismatchError(
            f"Invalid response command {code:08x}, expected {int(command):08x}"
        )


def decode_version(response: bytes) -> VersionInfo:
    """
    Decode a get-version response.

    Raises:
        ProtocolError: If the response is truncated
    """
    if len(response) < _VERSION.size:
        raise ProtocolError(f"Truncated version response ({len(response)} bytes)")
    return VersionInfo(*_VERSION.unpack_from(response))


def decode_check_id(response: bytes) -> int:
    """Decode a check-id response into the device ID."""
    check_response(CommandType.CHECK_ID, response)
    if len(response) < 8:
        raise ProtocolError("Truncated check-id response")
    return struct.unpack_from("<I", response, 4)[0]


def describe_device_id(device_id: int) -> str:
    return _describe(DeviceID, device_id)


def describe_chip_family(family: int) -> str:
    return _describe(ChipFamily, family)
