# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Programming and readout flows.

Both flows work on an already verified Connection. Neither is
transactional: if programming fails part way the device holds a
partially written flash and has to be erased and programmed again.
"""

import logging
from typing import Callable, List, Optional, Tuple, Union

from .connection import Connection
from .device import Device, find_devices
from .errors import NuvoprogError, VerifyError
from .image import Image
from .protocol import MemorySpace, VersionInfo

_log = logging.getLogger(__name__)

# Bytes per read/write command
CHUNK_SIZE = 32

ProgressCallback = Callable[[int, int], None]


def _regions(conn: Connection, image: Image) -> List[Tuple[int, bytes]]:
    """(device address, contents) of APROM and LDROM."""
    return [
        (0, image.aprom()),
        (conn.target.ldrom_offset, image.ldrom()),
    ]


def program(
    conn: Connection,
    image: Image,
    verify: bool = True,
    progress_callback: Optional[ProgressCallback] = None,
) -> None:
    """
    Erase the device and program an image.

    Args:
        conn: Ready connection
        image: Image with configuration bytes
        verify: Read back and compare afterwards
        progress_callback: Optional callback(bytes_written, total_bytes)

    Raises:
        VerifyError: If read back contents differ
    """
    target = conn.target
    dev = conn.device
    regions = _regions(conn, image)
    total = sum(len(data) for _, data in regions)

    dev.erase_flash_chip()

    if image.config:
        config = image.config.ljust(target.config.write_size, b"\xff")
        dev.write_memory(MemorySpace.CONFIG, 0, config[:target.config.write_size])

    done = 0
    for base, data in regions:
        for i in range(0, len(data), CHUNK_SIZE):
            dev.write_memory(MemorySpace.PROGRAM, base + i, data[i:i + CHUNK_SIZE])
            done += len(data[i:i + CHUNK_SIZE])
            if progress_callback:
                progress_callback(done, total)

    if verify:
        verify_image(conn, image)


def _read_region(dev: Device, base: int, length: int) -> bytes:
    out = bytearray()
    for i in range(0, length, CHUNK_SIZE):
        out += dev.read_memory(MemorySpace.PROGRAM, base + i, min(CHUNK_SIZE, length - i))
    return bytes(out)


def verify_image(conn: Connection, image: Image) -> None:
    """
    Compare device flash with an image.

    Raises:
        VerifyError: At the first differing address
    """
    dev = conn.device
    for base, expected in _regions(conn, image):
        actual = _read_region(dev, base, len(expected))
        if actual != expected:
            offset = next(i for i, (a, b) in enumerate(zip(actual, expected)) if a != b)
            raise VerifyError(
                f"Verify failed at 0x{base + offset:04x}: "
                f"read 0x{actual[offset]:02x}, expected 0x{expected[offset]:02x}"
            )
    _log.info("Verified %d bytes", len(image.memory))


def read_image(
    conn: Connection,
    progress_callback: Optional[ProgressCallback] = None,
) -> Image:
    """
    Read configuration and flash contents from the device.

    Args:
        conn: Ready connection
        progress_callback: Optional callback(bytes_read, total_bytes)

    Returns:
        A new Image
    """
    target = conn.target
    dev = conn.device
    image = Image(target)

    if target.config.read_size:
        image.config = dev.read_memory(MemorySpace.CONFIG, 0, target.config.read_size)

    aprom_size = image.aprom_size
    total = target.program_memory_size
    done = 0
    for base, offset, length in (
        (0, 0, aprom_size),
        (target.ldrom_offset, aprom_size, total - aprom_size),
    ):
        for i in range(0, length, CHUNK_SIZE):
            n = min(CHUNK_SIZE, length - i)
            image.memory[offset + i:offset + i + n] = dev.read_memory(MemorySpace.PROGRAM, base + i, n)
            done += n
            if progress_callback:
                progress_callback(done, total)

    return image


def list_devices(
    find: Callable[[], List[Device]] = find_devices,
) -> List[Tuple[str, Union[VersionInfo, NuvoprogError]]]:
    """
    Query every attached programmer.

    Returns:
        (path, VersionInfo or the error raised) for each programmer
    """
    results = []
    for dev in find():
        with dev:
            try:
                info = dev.get_version()
            except NuvoprogError as e:
                info = e
            results.append((dev.path, info))
    return results
