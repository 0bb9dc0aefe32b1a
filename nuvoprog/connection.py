# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Connection setup and teardown.

connect() finds the single attached programmer, checks its firmware,
configures the session, resets the target into ICP mode and verifies
the target's identity. The returned Connection always resets the
target back into normal operation when closed.

Example usage:
    from nuvoprog import connect, REGISTRY

    with connect(REGISTRY.by_name("n76e003")) as conn:
        conn.device.erase_flash_chip()
"""

import logging
from dataclasses import replace
from enum import Enum
from typing import Callable, List, Optional

from .device import Device, find_devices
from .errors import DeviceError, NuvoprogError
from .protocol import (
    FIRMWARE_VERSION_REQUIRED,
    Reset,
    ResetConnType,
    ResetMode,
    ResetType,
    SessionConfig,
    describe_device_id,
)
from .target import TargetDefinition

_log = logging.getLogger(__name__)


class State(Enum):
    """Connection states, in handshake order."""
    DISCOVERED = "discovered"
    OPENED = "opened"
    VERSION_CHECKED = "version_checked"
    CONFIGURED = "configured"
    RESET_FOR_ICP = "reset_for_icp"
    IDENTITY_VERIFIED = "identity_verified"
    CLOSED = "closed"


ICP_RESETS = (
    Reset(ResetType.AUTO, ResetConnType.ICP_MODE, ResetMode.EXT_MODE),
    Reset(ResetType.NONE_NULINK, ResetConnType.ICP_MODE, ResetMode.EXT_MODE),
)

# Experimentally observed sequence that gets the target running again
TEARDOWN_RESETS = (
    Reset(ResetType.AUTO, ResetConnType.ICP_MODE, ResetMode.EXT_MODE),
    Reset(ResetType.AUTO, ResetConnType.DISCONNECT, ResetMode.MODE1),
    Reset(ResetType.NONE_NULINK, ResetConnType.DISCONNECT, ResetMode.EXT_MODE),
)


class Connection:
    """
    An open programmer attached to a verified target.

    Can be used as a context manager:
        with connect(target) as conn:
            ...
    """

    def __init__(self, device: Device, target: TargetDefinition):
        self.device = device
        self.target = target
        self.state = State.OPENED
        self.version = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def ready(self) -> bool:
        return self.state == State.IDENTITY_VERIFIED

    def handshake(self, session_config: Optional[SessionConfig] = None) -> None:
        """
        Bring the target into ICP mode and verify it.

        Raises:
            DeviceError: If the programmer firmware is too old or the
                target is not the expected device
        """
        dev = self.device

        self.version = dev.get_version()
        _log.info("Programmer: %s", self.version)
        if self.version.firmware_version < FIRMWARE_VERSION_REQUIRED:
            raise DeviceError(
                f"Your programmer's firmware is out of date "
                f"(version {self.version.firmware_version}, need {FIRMWARE_VERSION_REQUIRED})"
            )
        self.state = State.VERSION_CHECKED

        session_config = replace(session_config or SessionConfig(), chip_family=self.target.family)
        dev.set_config(session_config)
        self.state = State.CONFIGURED

        for reset in ICP_RESETS:
            dev.reset(reset)
        self.state = State.RESET_FOR_ICP

        device_id = dev.check_id()
        if device_id != self.target.device_id:
            raise DeviceError(
                f"Unsupported device {describe_device_id(device_id)}, "
                f"expected {self.target.name}"
            )
        self.state = State.IDENTITY_VERIFIED

    def close(self) -> None:
        """
        Reset the target into normal operation and release the programmer.

        Reset failures are logged, not raised; the outcome of the
        operation that used the connection is what matters.
        """
        if self.state == State.CLOSED:
            return

        try:
            for reset in TEARDOWN_RESETS:
                try:
                    self.device.reset(reset)
                except NuvoprogError as e:
                    _log.warning("Reset %s failed during teardown: %s", reset, e)
        finally:
            self.device.close()
            self.state = State.CLOSED


def connect(
    target: TargetDefinition,
    find: Callable[[], List[Device]] = find_devices,
    session_config: Optional[SessionConfig] = None,
) -> Connection:
    """
    Open the attached programmer and verify the target.

    Args:
        target: Expected target device
        find: Returns the open candidate devices
        session_config: Session parameters (defaults: 1000 kHz clock,
            3300 mV); the chip family is taken from the target

    Returns:
        A ready Connection

    Raises:
        DeviceError: If there is not exactly one programmer, or the
            handshake rejects it
    """
    devices = find()

    if not devices:
        raise DeviceError("No programmer found")
    if len(devices) > 1:
        for dev in devices:
            dev.close()
        raise DeviceError("Multiple programmers found - you must specify one")

    conn = Connection(devices[0], target)
    try:
        conn.handshake(session_config)
    except BaseException:
        conn.close()
        raise

    return conn
