# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Nu-Link programmer session over USB.

A Device wraps an open USB handle, frames every request, tracks the
sequence number and checks that each response belongs to the request
that was just sent.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import usb.core
import usb.util

from .errors import (
    ProtocolError,
    ReadSizeError,
    SequenceError,
    TransportError,
    WriteSizeError,
)
from .frame import Framer, V1Framer, V2Framer
from .protocol import (
    CommandType,
    MemorySpace,
    Reset,
    SessionConfig,
    VersionInfo,
    check_response,
    decode_check_id,
    decode_version,
    encode_check_id,
    encode_erase_flash_chip,
    encode_get_version,
    encode_read_memory,
    encode_reset,
    encode_set_config,
    encode_write_memory,
)

_log = logging.getLogger(__name__)

# Attempts made by receive() before giving up on a sequence number
RECEIVE_ATTEMPTS = 5

# Sequence numbers run 1..0x7F
SEQUENCE_LIMIT = 0x80

USB_TIMEOUT_MS = 5000

_HID_CLASS = 0x03


@dataclass(frozen=True)
class ProgrammerModel:
    """Static description of one programmer model."""
    name: str
    framer: Callable[[], Framer]
    # None means "first interrupt endpoint in that direction"
    ep_out: Optional[int] = None
    ep_in: Optional[int] = None


PROGRAMMERS = {
    (0x0416, 0x511C): ProgrammerModel("Nu-Link-Me (UART off)", V1Framer, 0x04, 0x83),
    (0x0416, 0x511D): ProgrammerModel("Nu-Link-Me (UART on)", V1Framer, 0x04, 0x83),
    (0x0416, 0x5200): ProgrammerModel("Nu-Link2-Me", V2Framer),
    (0x0416, 0x5201): ProgrammerModel("Nu-Link2-Pro", V2Framer),
}


class UsbHandle:
    """
    Raw frame transport over a programmer's HID interrupt endpoints.

    Claims the HID interface on construction (detaching the kernel
    driver where the platform supports it).
    """

    def __init__(self, device, model: ProgrammerModel, timeout: int = USB_TIMEOUT_MS):
        self._dev = device
        self._timeout = timeout
        self.path = f"usb:{device.bus:03d}:{device.address:03d}"

        try:
            cfg = device.get_active_configuration()
        except usb.core.USBError:
            device.set_configuration()
            cfg = device.get_active_configuration()

        intf = usb.util.find_descriptor(cfg, bInterfaceClass=_HID_CLASS)
        if intf is None:
            raise TransportError(f"{self.path}: no HID interface found")
        self._intf = intf.bInterfaceNumber

        try:
            if device.is_kernel_driver_active(self._intf):
                device.detach_kernel_driver(self._intf)
        except NotImplementedError:
            # Not available on this platform's backend
            pass
        usb.util.claim_interface(device, self._intf)

        try:
            self._ep_out = model.ep_out or self._find_endpoint(intf, usb.util.ENDPOINT_OUT)
            self._ep_in = model.ep_in or self._find_endpoint(intf, usb.util.ENDPOINT_IN)
        except BaseException:
            self.close()
            raise

    def _find_endpoint(self, intf, direction) -> int:
        ep = usb.util.find_descriptor(
            intf,
            custom_match=lambda e: usb.util.endpoint_direction(e.bEndpointAddress) == direction,
        )
        if ep is None:
            raise TransportError(f"{self.path}: missing endpoint")
        return ep.bEndpointAddress

    def write(self, data: bytes) -> int:
        try:
            return self._dev.write(self._ep_out, data, self._timeout)
        except usb.core.USBTimeoutError:
            raise TransportError("Timeout sending request") from None
        except usb.core.USBError as e:
            raise TransportError(f"USB write failed: {e}") from e

    def read(self, size: int) -> bytes:
        try:
            return bytes(self._dev.read(self._ep_in, size, self._timeout))
        except usb.core.USBTimeoutError:
            raise TransportError("Timeout waiting for response") from None
        except usb.core.USBError as e:
            raise TransportError(f"USB read failed: {e}") from e

    def close(self):
        if self._dev is None:
            return
        try:
            usb.util.release_interface(self._dev, self._intf)
        finally:
            usb.util.dispose_resources(self._dev)
            self._dev = None


class Device:
    """
    Request/response session with one programmer.

    Can be used as a context manager:
        with find_devices()[0] as dev:
            print(dev.get_version())
    """

    def __init__(self, handle, framer: Framer):
        """
        Args:
            handle: Frame transport with write(bytes) -> int,
                read(size) -> bytes and close()
            framer: Frame layout used by this programmer
        """
        self._handle = handle
        self._framer = framer
        self._seq = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        """Close the USB handle."""
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    @property
    def path(self) -> str:
        return getattr(self._handle, "path", "<unknown>")

    @property
    def framer(self) -> Framer:
        return self._framer

    @property
    def max_payload_size(self) -> int:
        return self._framer.max_body_length

    @property
    def sequence_number(self) -> int:
        """Sequence number of the last request sent."""
        return self._seq

    def _next_sequence_number(self) -> int:
        self._seq += 1
        if self._seq >= SEQUENCE_LIMIT:
            self._seq = 1
        return self._seq

    def send(self, body: bytes) -> None:
        """Frame a request body and write it."""
        frame = self._framer.frame(self._next_sequence_number(), body)
        raw = bytes(frame)
        _log.debug("> %s", raw.hex())

        written = self._handle.write(raw)
        if written != len(raw):
            raise WriteSizeError()

    def receive(self) -> bytes:
        """
        Read the response to the last request.

        Frames carrying an older sequence number are stale responses
        still buffered in the programmer and are skipped.

        Returns:
            Response body

        Raises:
            ReadSizeError: If a read returns a partial frame
            SequenceError: If no matching frame arrives
        """
        for _ in range(RECEIVE_ATTEMPTS):
            raw = self._handle.read(self._framer.frame_length)
            if len(raw) != self._framer.frame_length:
                raise ReadSizeError()

            _log.debug("< %s", bytes(raw).hex())
            frame = self._framer.unframe(raw)
            if frame.sequence_number == self._seq:
                return frame.body

            _log.warning(
                "Expecting sequence number %d, got %d",
                self._seq, frame.sequence_number,
            )

        raise SequenceError()

    def request(self, body: bytes) -> bytes:
        """Send a request and return the response body."""
        self.send(body)
        return self.receive()

    def _command(self, command: CommandType, body: bytes) -> bytes:
        resp = self.request(body)
        check_response(command, resp)
        return resp

    def get_version(self) -> VersionInfo:
        """Query programmer firmware version and product."""
        resp = self.request(encode_get_version(self.max_payload_size))
        return decode_version(resp)

    def set_config(self, config: SessionConfig) -> None:
        """Configure the debug session."""
        _log.info("Setting config %s", config)
        self._command(CommandType.SET_CONFIG, encode_set_config(config))

    def reset(self, reset: Reset) -> None:
        """Issue a target reset."""
        _log.info("Performing reset %s", reset)
        self._command(CommandType.RESET, encode_reset(reset))

    def check_id(self) -> int:
        """Read the target's device ID."""
        resp = self.request(encode_check_id())
        device_id = decode_check_id(resp)
        _log.info("Device ID 0x%08x", device_id)
        return device_id

    def read_memory(self, space: MemorySpace, address: int, length: int) -> bytes:
        """
        Read target memory.

        Args:
            space: Memory space
            address: 16-bit start address
            length: Number of bytes, must fit in one response

        Returns:
            Exactly `length` bytes
        """
        _log.debug("Reading %d bytes from %s 0x%04x", length, space, address)
        resp = self.request(encode_read_memory(space, address, length))
        if len(resp) < length:
            raise ProtocolError(f"Short read: got {len(resp)} of {length} bytes")
        return resp[:length]

    def write_memory(self, space: MemorySpace, address: int, data: bytes) -> None:
        """Write target memory; data must fit in one request."""
        _log.debug("Writing %d bytes to %s 0x%04x %s", len(data), space, address, bytes(data).hex())
        self._command(CommandType.WRITE_MEMORY, encode_write_memory(space, address, data))

    def erase_flash_chip(self) -> None:
        """Erase all flash, including configuration."""
        _log.info("Erasing flash")
        self._command(CommandType.ERASE_FLASH_CHIP, encode_erase_flash_chip())


def _usb_ids(dev) -> Tuple[int, int]:
    return dev.idVendor, dev.idProduct


def find_devices() -> List[Device]:
    """
    Open every attached programmer listed in PROGRAMMERS.

    Returns:
        Open Devices; the caller owns and must close them

    Raises:
        TransportError: If USB access fails
    """
    try:
        candidates = list(usb.core.find(
            find_all=True,
            custom_match=lambda d: _usb_ids(d) in PROGRAMMERS,
        ))
    except usb.core.NoBackendError as e:
        raise TransportError(f"No USB backend available: {e}") from e

    devices = []
    try:
        for candidate in candidates:
            model = PROGRAMMERS[_usb_ids(candidate)]
            _log.debug("Found %s at bus %d address %d", model.name, candidate.bus, candidate.address)
            try:
                handle = UsbHandle(candidate, model)
            except usb.core.USBError as e:
                raise TransportError(f"Opening {model.name}: {e}") from e
            devices.append(Device(handle, model.framer()))
    except TransportError:
        for dev in devices:
            dev.close()
        raise

    return devices
