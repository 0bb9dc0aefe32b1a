# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
nuvoprog - Nuvoton 8051 programmer library.

This package programs and reads Nuvoton N76-family microcontrollers
through a Nu-Link USB programmer, and converts flash images between
Intel HEX files and device memory.

Example usage:
    from nuvoprog import REGISTRY, connect, program, read_target_data

    target = REGISTRY.by_name("N76E003")
    image = read_target_data(target, image="firmware.ihx", config="@config.json")

    with connect(target) as conn:
        program(conn, image, progress_callback=lambda n, total: print(f"{n}/{total}"))
"""

from .connection import Connection, State, connect
from .device import Device, PROGRAMMERS, find_devices
from .errors import (
    NuvoprogError,
    FormatError,
    RangeError,
    UsageError,
    ConfigError,
    DeviceError,
    VerifyError,
    TransportError,
    ProtocolError,
    InvariantError,
)
from .frame import Frame, Framer, V1Framer, V2Framer
from .ihex import Block, Reader, Record, RecordType, Writer, read_record, write_record
from .image import Image, parse_config_arg, read_target_data
from .operations import list_devices, program, read_image, verify_image
from .protocol import (
    ChipFamily,
    CommandType,
    DeviceID,
    MemorySpace,
    Reset,
    ResetConnType,
    ResetMode,
    ResetType,
    SessionConfig,
    VersionInfo,
)
from .target import ConfigSpace, TargetConfig, TargetDefinition, TargetRegistry
from .targets import REGISTRY

__version__ = "0.1.0"

__all__ = [
    # Intel HEX
    "Block",
    "Reader",
    "Record",
    "RecordType",
    "Writer",
    "read_record",
    "write_record",
    # Framing
    "Frame",
    "Framer",
    "V1Framer",
    "V2Framer",
    # Protocol types
    "ChipFamily",
    "CommandType",
    "DeviceID",
    "MemorySpace",
    "Reset",
    "ResetConnType",
    "ResetMode",
    "ResetType",
    "SessionConfig",
    "VersionInfo",
    # Device
    "Device",
    "PROGRAMMERS",
    "find_devices",
    # Targets
    "ConfigSpace",
    "TargetConfig",
    "TargetDefinition",
    "TargetRegistry",
    "REGISTRY",
    # Images
    "Image",
    "parse_config_arg",
    "read_target_data",
    # Connection
    "Connection",
    "State",
    "connect",
    # Flows
    "list_devices",
    "program",
    "read_image",
    "verify_image",
    # Errors
    "NuvoprogError",
    "FormatError",
    "RangeError",
    "UsageError",
    "ConfigError",
    "DeviceError",
    "VerifyError",
    "TransportError",
    "ProtocolError",
    "InvariantError",
]
