# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
N76 family (1T 8051) targets.

The N76E003 keeps its configuration in four CONFIG bytes. Like fuses,
an erased bit reads as 1, so most boolean options are *enabled* when
their bit is cleared.

    CONFIG0  [7] CBS     boot select (0 = LDROM)
             [5] OCDPWM  PWM enabled during OCD halt
             [4] OCDEN   on-chip debugger enabled
             [2] RPD     reset pin disabled
             [1] LOCK    flash locked
    CONFIG1  [2:0] LDSIZE  LDROM size
    CONFIG2  [7] CBODEN  brown-out detector disabled
             [5:4] COV   brown-out voltage
             [3] BOIAP   IAP enabled during brown-out
             [2] CBORST  brown-out reset disabled
    CONFIG3  [7:4] WDTEN watchdog mode
"""

from dataclasses import dataclass, fields
from enum import IntEnum

from ..errors import ConfigError, InvariantError
from ..protocol import ChipFamily, DeviceID
from ..target import ConfigSpace, TargetConfig, TargetDefinition

# Bytes needed to decode a configuration
MIN_SIZE = 4
# Bytes produced by encode()
ENCODED_SIZE = 8


class BootSelect(IntEnum):
    LDROM = 0
    APROM = 1


class LDROMSize(IntEnum):
    SIZE_0KB = 0
    SIZE_1KB = 1
    SIZE_2KB = 2
    SIZE_3KB = 3
    SIZE_4KB = 4


class BODVoltage(IntEnum):
    """Brown-out voltage; the value is the COV field code."""
    V4_4 = 0
    V3_7 = 1
    V2_7 = 2
    V2_2 = 3


class WDTMode(IntEnum):
    DISABLED = 0
    ENABLED = 1
    ENABLED_ALWAYS = 2


# (size, LDSIZE code, bytes), in code order; unlisted codes mean 4 KiB
_LDROM_TABLE = (
    (LDROMSize.SIZE_0KB, 7, 0),
    (LDROMSize.SIZE_1KB, 6, 1024),
    (LDROMSize.SIZE_2KB, 5, 2048),
    (LDROMSize.SIZE_3KB, 4, 3072),
    (LDROMSize.SIZE_4KB, 3, 4096),
)
_LDROM_BY_CODE = {code: size for size, code, _ in _LDROM_TABLE}
_LDROM_CODE = {size: code for size, code, _ in _LDROM_TABLE}
_LDROM_BYTES = {size: nbytes for size, _, nbytes in _LDROM_TABLE}

_WDT_BY_NIBBLE = {
    0xF: WDTMode.DISABLED,
    0x5: WDTMode.ENABLED,
}
_WDT_BYTE = {
    WDTMode.DISABLED: 0xFF,
    WDTMode.ENABLED: 0x5F,
    WDTMode.ENABLED_ALWAYS: 0x0F,
}

# JSON spelling of enumerated fields
_ENUM_NAMES = {
    "boot_select": {
        BootSelect.LDROM: "ldrom",
        BootSelect.APROM: "aprom",
    },
    "ldrom_size": {
        LDROMSize.SIZE_0KB: "0kb",
        LDROMSize.SIZE_1KB: "1kb",
        LDROMSize.SIZE_2KB: "2kb",
        LDROMSize.SIZE_3KB: "3kb",
        LDROMSize.SIZE_4KB: "4kb",
    },
    "bod_voltage": {
        BODVoltage.V4_4: "4v4",
        BODVoltage.V3_7: "3v7",
        BODVoltage.V2_7: "2v7",
        BODVoltage.V2_2: "2v2",
    },
    "wdt": {
        WDTMode.DISABLED: "disabled",
        WDTMode.ENABLED: "enabled",
        WDTMode.ENABLED_ALWAYS: "enabled_always",
    },
}


@dataclass
class N76E003Config(TargetConfig):
    """
    N76E003 configuration.

    Defaults are the values an erased (all 0xFF) configuration decodes
    to.
    """
    boot_select: BootSelect = BootSelect.APROM
    pwm_enabled_during_ocd: bool = False
    ocd_enabled: bool = False
    reset_pin_disabled: bool = False
    locked: bool = False
    ldrom_size: LDROMSize = LDROMSize.SIZE_0KB
    bod_disabled: bool = False
    bod_voltage: BODVoltage = BODVoltage.V2_2
    iap_enabled_in_brownout: bool = False
    bod_reset_disabled: bool = False
    wdt: WDTMode = WDTMode.DISABLED

    @classmethod
    def decode(cls, data: bytes) -> "N76E003Config":
        if len(data) < MIN_SIZE:
            raise ConfigError("Too short for config bytes")

        c0, c1, c2, c3 = data[:4]
        return cls(
            boot_select=BootSelect.APROM if c0 & 0x80 else BootSelect.LDROM,
            pwm_enabled_during_ocd=(c0 & 0x20) == 0,
            ocd_enabled=(c0 & 0x10) == 0,
            reset_pin_disabled=(c0 & 0x04) == 0,
            locked=(c0 & 0x02) == 0,
            ldrom_size=_LDROM_BY_CODE.get(c1 & 0x7, LDROMSize.SIZE_4KB),
            bod_disabled=(c2 & 0x80) == 0,
            bod_voltage=BODVoltage((c2 >> 4) & 0x3),
            iap_enabled_in_brownout=(c2 & 0x08) == 0,
            bod_reset_disabled=(c2 & 0x04) == 0,
            wdt=_WDT_BY_NIBBLE.get(c3 >> 4, WDTMode.ENABLED_ALWAYS),
        )

    def encode(self) -> bytes:
        buf = bytearray(b"\xff" * ENCODED_SIZE)

        if self.boot_select == BootSelect.LDROM:
            buf[0] &= 0x7F
        if self.pwm_enabled_during_ocd:
            buf[0] &= 0xDF
        if self.ocd_enabled:
            buf[0] &= 0xEF
        if self.reset_pin_disabled:
            buf[0] &= 0xFB
        if self.locked:
            buf[0] &= 0xFD

        if self.ldrom_size not in _LDROM_CODE:
            raise InvariantError(f"Invalid LDROM size {self.ldrom_size!r}")
        buf[1] = 0xF8 | _LDROM_CODE[self.ldrom_size]

        if self.bod_disabled:
            buf[2] &= 0x7F
        buf[2] = (buf[2] & 0xCF) | (int(self.bod_voltage) & 0x3) << 4
        if self.iap_enabled_in_brownout:
            buf[2] &= 0xF7
        if self.bod_reset_disabled:
            buf[2] &= 0xFB

        buf[3] = _WDT_BYTE[self.wdt]

        # Sense check: the bytes must decode back to this config
        if self.decode(bytes(buf)) != self:
            raise InvariantError(f"Configuration round trip error: {buf.hex()} != {self}")

        return bytes(buf)

    @property
    def ldrom_bytes(self) -> int:
        if self.ldrom_size not in _LDROM_BYTES:
            raise InvariantError(f"Invalid LDROM size {self.ldrom_size!r}")
        return _LDROM_BYTES[self.ldrom_size]

    @classmethod
    def from_dict(cls, doc: dict) -> "N76E003Config":
        """
        Build from a JSON document.

        Missing fields take their erased (all 0xFF) values, so `{}` encodes
        to FF FF FF FF.
        """
        if not isinstance(doc, dict):
            raise ConfigError("Configuration must be a JSON object")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(doc) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration field(s): {', '.join(unknown)}")

        values = {}
        for name, value in doc.items():
            if name in _ENUM_NAMES:
                by_name = {v: k for k, v in _ENUM_NAMES[name].items()}
                if value not in by_name:
                    choices = ", ".join(_ENUM_NAMES[name].values())
                    raise ConfigError(f"Invalid value {value!r} for {name} (expected one of {choices})")
                values[name] = by_name[value]
            else:
                if not isinstance(value, bool):
                    raise ConfigError(f"Invalid value {value!r} for {name} (expected true or false)")
                values[name] = value

        return cls(**values)

    def to_dict(self) -> dict:
        doc = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in _ENUM_NAMES:
                value = _ENUM_NAMES[f.name][value]
            doc[f.name] = value
        return doc


N76E003 = TargetDefinition(
    name="N76E003",
    family=ChipFamily.N76E003,
    device_id=DeviceID.N76E003,
    program_memory_size=12 * 1024,
    ldrom_offset=0x3800,
    config=ConfigSpace(
        hex_offset=0x30000,
        min_size=MIN_SIZE,
        read_size=8,
        write_size=32,
        config_type=N76E003Config,
    ),
)
