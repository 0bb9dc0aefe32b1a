# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Flash images.

An Image holds the target's whole program memory (APROM followed by
LDROM) plus its configuration bytes. Images are assembled from Intel
HEX files: either one complete image, or separate APROM and LDROM
files, with the configuration taken from the image or given directly.

In Intel HEX form the configuration is stored as a block at the
target's configuration offset, separate from program memory.
"""

import json
import logging
import string
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .errors import ConfigError, RangeError, UsageError
from .fileio import open_read
from .ihex import Reader, Writer
from .target import TargetConfig, TargetDefinition

_log = logging.getLogger(__name__)

Source = Union[str, Path, BinaryIO]


class Image:
    """Program memory and configuration bytes of one target."""

    def __init__(self, target: TargetDefinition):
        self.target = target
        self.memory = bytearray(b"\xff" * target.program_memory_size)
        self.config = b""

    def load(self, stream: BinaryIO, offset: int, length: int, kind: str,
             with_config: bool = True) -> None:
        """
        Copy the blocks of an Intel HEX stream into memory.

        Args:
            stream: Binary stream of Intel HEX records
            offset: Where address 0 of the stream lands in memory
            length: Size of the region the stream may cover
            kind: Name of the source, used in error messages
            with_config: Take the configuration block from this stream;
                otherwise it is skipped

        Raises:
            RangeError: If a block is neither inside the region nor the
                configuration block
        """
        for block in Reader(stream):
            end = block.address + len(block.data)
            if end <= length:
                self.memory[offset + block.address:offset + end] = block.data
            elif block.address == self.target.config.hex_offset:
                if with_config:
                    self.config = bytes(block.data)
                else:
                    _log.warning("Ignoring configuration block in %s", kind)
            else:
                raise RangeError(
                    f"Block 0x{block.address:08x}+{len(block.data):02d} out of range for {kind}"
                )

    def decode_config(self) -> TargetConfig:
        if not self.config:
            raise ConfigError("No configuration bytes available")
        return self.target.config.decode(self.config)

    @property
    def ldrom_size(self) -> int:
        return self.decode_config().ldrom_bytes

    @property
    def aprom_size(self) -> int:
        return self.target.program_memory_size - self.ldrom_size

    def aprom(self) -> bytes:
        """Program region (APROM) contents."""
        return bytes(self.memory[:self.aprom_size])

    def ldrom(self) -> bytes:
        """Loader region (LDROM) contents; empty if disabled."""
        return bytes(self.memory[self.aprom_size:])

    def write(self, sink: BinaryIO) -> None:
        """Write configuration and memory as Intel HEX, then close sink."""
        with Writer(sink) as w:
            if self.config:
                w.write(self.target.config.hex_offset, self.config)
            w.write(0, self.memory)

    def write_aprom(self, sink: BinaryIO) -> None:
        """Write the APROM alone, at address 0."""
        _write_region(sink, self.aprom())

    def write_ldrom(self, sink: BinaryIO) -> None:
        """Write the LDROM alone, at address 0."""
        _write_region(sink, self.ldrom())


def _write_region(sink: BinaryIO, data: bytes):
    with Writer(sink) as w:
        w.write(0, data)


def _load(image: Image, source: Source, offset: int, length: int, kind: str,
          with_config: bool = True):
    if isinstance(source, (str, Path)):
        _log.debug("Loading %s from %s", kind, source)
        stream = open_read(source)
        try:
            image.load(stream, offset, length, kind, with_config)
        finally:
            stream.close()
    else:
        image.load(source, offset, length, kind, with_config)


def parse_config_arg(target: TargetDefinition, arg: str) -> bytes:
    """
    Parse a configuration given on the command line.

    Accepts a hex string (e.g. "6FFBFFFF"), a JSON document
    ("{...}") or "@file.json" ("@-" for stdin).

    Returns:
        Configuration bytes

    Raises:
        ConfigError: If the argument cannot be used
    """
    arg = arg.strip()
    config_type = target.config.config_type

    if not arg:
        raise ConfigError("No configuration specified")

    if arg[0] == "{":
        return config_type.from_dict(_parse_json(arg)).encode()

    if arg[0] == "@":
        stream = open_read(arg[1:])
        try:
            text = stream.read()
        finally:
            stream.close()
        return config_type.from_dict(_parse_json(text)).encode()

    if arg[0] in string.hexdigits:
        try:
            data = bytes.fromhex(arg)
        except ValueError as e:
            raise ConfigError(f"Invalid configuration hex: {e}") from None
        if len(data) < target.config.min_size:
            raise ConfigError("Specified configuration too short")
        if len(data) > target.config.write_size:
            raise ConfigError("Specified configuration too long")
        return data

    raise ConfigError(f"'{arg}' not understood for config parameter")


def _parse_json(text):
    try:
        return json.loads(text)
    except ValueError as e:
        raise ConfigError(f"Parsing configuration: {e}") from None


def read_target_data(
    target: TargetDefinition,
    config: Optional[str] = None,
    image: Optional[Source] = None,
    aprom: Optional[Source] = None,
    ldrom: Optional[Source] = None,
    need_image: bool = True,
) -> Image:
    """
    Assemble an Image from the given sources.

    Args:
        target: Target definition
        config: Configuration argument (see parse_config_arg); overrides
            the configuration found in `image`
        image: Complete image file
        aprom: APROM file, overlaid on the APROM region (its configuration
            block, if any, is ignored)
        ldrom: LDROM file, overlaid on the LDROM region (likewise)
        need_image: Whether at least one of image/aprom/ldrom is required

    Returns:
        The assembled Image, with configuration bytes

    Raises:
        UsageError: If the combination of sources is invalid
        ConfigError: If no usable configuration is available
        RangeError: If a file has data outside its region
        FormatError: If a file is not valid Intel HEX
    """
    given = [src for src in (image, aprom, ldrom) if src is not None]
    if not given and need_image:
        raise UsageError("No input files specified")
    if len(given) == 3:
        raise UsageError("Can only specify a maximum of two of image, APROM and LDROM")

    d = Image(target)
    size = target.program_memory_size

    if image is not None:
        _load(d, image, 0, size, "image")

    if config is not None:
        d.config = parse_config_arg(target, config)

    if not d.config:
        raise ConfigError("No configuration bytes specified in image or config parameter")

    ldrom_size = d.ldrom_size
    aprom_size = size - ldrom_size

    if ldrom is not None and ldrom_size == 0:
        raise UsageError("LDROM file specified but configuration does not enable LDROM")

    if aprom is not None:
        d.memory[:aprom_size] = b"\xff" * aprom_size
        _load(d, aprom, 0, aprom_size, "aprom", with_config=False)

    if ldrom is not None:
        d.memory[aprom_size:] = b"\xff" * ldrom_size
        _load(d, ldrom, aprom_size, ldrom_size, "ldrom", with_config=False)

    return d
