# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Target device definitions and lookup.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Optional, Type


class TargetConfig(ABC):
    """Decoded configuration bytes of one target family."""

    @classmethod
    @abstractmethod
    def decode(cls, data: bytes) -> "TargetConfig":
        """
        Decode configuration bytes.

        Raises:
            ConfigError: If the bytes are too short
        """

    @abstractmethod
    def encode(self) -> bytes:
        """Encode to configuration bytes (unused bits set)."""

    @property
    @abstractmethod
    def ldrom_bytes(self) -> int:
        """Size of the loader region in bytes (0 if disabled)."""

    @classmethod
    @abstractmethod
    def from_dict(cls, doc: dict) -> "TargetConfig":
        """Build from a JSON document."""

    @abstractmethod
    def to_dict(self) -> dict:
        """Convert to a JSON document."""


@dataclass(frozen=True)
class ConfigSpace:
    """Where and how a target stores its configuration bytes."""
    # Address of configuration data in Intel HEX files
    hex_offset: int
    # Minimum size of valid configuration data
    min_size: int
    # Size used when reading configuration space
    read_size: int
    # Size used when writing (data is padded with 0xFF)
    write_size: int
    config_type: Type[TargetConfig]

    def decode(self, data: bytes) -> TargetConfig:
        return self.config_type.decode(data)


@dataclass(frozen=True)
class TargetDefinition:
    """A supported target device."""
    name: str
    family: int
    device_id: int
    # Bytes of program memory (APROM + LDROM)
    program_memory_size: int
    # Address of the LDROM in program space, as seen by the programmer
    ldrom_offset: int
    config: ConfigSpace

    @property
    def id(self) -> int:
        return self.family << 32 | self.device_id


class TargetRegistry:
    """Read-only lookup of targets by name or by (family, device ID)."""

    def __init__(self, targets: Iterable[TargetDefinition]):
        by_name = {}
        by_id = {}
        for target in targets:
            name = target.name.lower()
            if name in by_name:
                raise ValueError(f"Target already registered with name {name}")
            if target.id in by_id:
                raise ValueError(
                    f"Target already registered with ID {target.family:08x}:{target.device_id:08x}"
                )
            by_name[name] = target
            by_id[target.id] = target

        self._by_name = MappingProxyType(by_name)
        self._by_id = MappingProxyType(by_id)

    def __iter__(self):
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def names(self):
        return sorted(t.name for t in self._by_name.values())

    def by_name(self, name: str) -> Optional[TargetDefinition]:
        return self._by_name.get(name.lower())

    def by_id(self, family: int, device_id: int) -> Optional[TargetDefinition]:
        return self._by_id.get(family << 32 | device_id)
