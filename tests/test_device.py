# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Tests for the Device session and USB discovery."""

import struct
from unittest.mock import MagicMock, Mock, patch

import pytest
import usb.core

from conftest import FakeProgrammer, MockHandle
from nuvoprog.device import PROGRAMMERS, Device, UsbHandle, find_devices
from nuvoprog.errors import (
    ProtocolError,
    ReadSizeError,
    ResponseMismatchError,
    SequenceError,
    TransportError,
    WriteSizeError,
)
from nuvoprog.frame import V1Framer, V2Framer
from nuvoprog.protocol import (
    CommandType,
    DeviceID,
    MemorySpace,
    Reset,
    ResetConnType,
    ResetMode,
    ResetType,
    SessionConfig,
)


def response(seq: int, body: bytes) -> bytes:
    return bytes(V1Framer().frame(seq, body))


class TestSequenceNumbers:
    """Tests for sequence number handling."""

    def test_first_request_uses_one(self):
        """Sequence numbers start at 1."""
        handle = MockHandle([response(1, b"\xa4\x00\x00\x00")])
        dev = Device(handle, V1Framer())
        dev.erase_flash_chip()
        assert handle.written[0][0] == 1
        assert dev.sequence_number == 1

    def test_wraps_to_one(self):
        """After 0x7F the sequence number wraps to 1, never 0."""
        prog = FakeProgrammer()
        dev = Device(prog, prog.framer)
        seen = []
        for _ in range(0x80):
            dev.erase_flash_chip()
            seen.append(dev.sequence_number)

        assert seen[:3] == [1, 2, 3]
        assert seen[0x7E] == 0x7F
        assert seen[0x7F] == 1
        assert 0 not in seen


class TestReceive:
    """Tests for Device.receive."""

    def test_skips_stale_frames(self):
        """Up to four stale frames are skipped."""
        stale = [response(0x55, b"old") for _ in range(4)]
        handle = MockHandle(stale + [response(1, b"\xa4\x00\x00\x00")])
        dev = Device(handle, V1Framer())
        dev.erase_flash_chip()

    def test_gives_up_after_five_frames(self):
        """Five frames with the wrong sequence number fail."""
        stale = [response(0x55, b"old") for _ in range(5)]
        handle = MockHandle(stale + [response(1, b"\xa4\x00\x00\x00")])
        dev = Device(handle, V1Framer())
        with pytest.raises(SequenceError):
            dev.erase_flash_chip()
        # The sixth, matching frame was never read
        assert len(handle.frames) == 1

    def test_stale_frames_logged(self, caplog):
        """Skipped frames are reported."""
        handle = MockHandle([response(9, b""), response(1, b"\xa4\x00\x00\x00")])
        Device(handle, V1Framer()).erase_flash_chip()
        assert "Expecting sequence number 1, got 9" in caplog.text

    def test_short_read(self):
        """A partial frame is an error."""
        handle = MockHandle([response(1, b"\xa4\x00\x00\x00")[:32]])
        with pytest.raises(ReadSizeError):
            Device(handle, V1Framer()).erase_flash_chip()

    def test_transport_error_propagates(self):
        """Read timeouts reach the caller."""
        with pytest.raises(TransportError, match="Timeout"):
            Device(MockHandle(), V1Framer()).erase_flash_chip()


class TestSend:
    """Tests for Device.send."""

    def test_frame_written(self):
        """Request is framed to the full frame length."""
        handle = MockHandle([response(1, b"\xa4\x00\x00\x00")])
        Device(handle, V1Framer()).erase_flash_chip()
        assert handle.written == [response(1, b"\xa4\x00\x00\x00")]

    def test_short_write(self):
        """A partial write is an error."""
        handle = MockHandle()
        handle.write_size = 10
        with pytest.raises(WriteSizeError):
            Device(handle, V1Framer()).send(b"\x00")


class TestCommands:
    """Tests for the command methods."""

    def test_get_version(self, device, programmer):
        """get-version fills the body with 0xFF."""
        info = device.get_version()
        assert info.firmware_version == 7014
        assert programmer.commands() == [CommandType.GET_VERSION]

    def test_get_version_v2(self):
        """Nu-Link2 sends a 1021 byte get-version body."""
        prog = FakeProgrammer(framer=V2Framer())
        dev = Device(prog, prog.framer)
        assert dev.max_payload_size == 1021
        assert dev.get_version().firmware_version == 7014

    def test_set_config(self, device, programmer):
        """set-config sends the session parameters."""
        device.set_config(SessionConfig(clock=2000))
        command, body = programmer.log[0]
        assert command == CommandType.SET_CONFIG
        assert struct.unpack("<IIIII", body) == (2000, 0x800, 3300, 0, 0)

    def test_reset(self, device, programmer):
        """reset sends type, connection and mode."""
        device.reset(Reset(ResetType.AUTO, ResetConnType.DISCONNECT, ResetMode.MODE1))
        assert programmer.resets() == [(0, 4, 1)]

    def test_check_id(self, device):
        """check-id returns the device ID."""
        assert device.check_id() == DeviceID.N76E003

    def test_echo_mismatch(self, device, programmer):
        """Commands that echo the wrong code fail."""
        programmer.fail.add(CommandType.ERASE_FLASH_CHIP)
        with pytest.raises(ResponseMismatchError):
            device.erase_flash_chip()

    def test_write_then_read_memory(self, device, programmer):
        """Written bytes are read back."""
        device.write_memory(MemorySpace.PROGRAM, 0x100, b"\x01\x02\x03")
        assert programmer.flash[0x100:0x103] == b"\x01\x02\x03"
        assert device.read_memory(MemorySpace.PROGRAM, 0x100, 4) == b"\x01\x02\x03\xff"

    def test_read_config_space(self, device, programmer):
        """Config space reads go to the config memory."""
        programmer.config[:4] = b"\x7f\xfd\xff\xff"
        assert device.read_memory(MemorySpace.CONFIG, 0, 8) == b"\x7f\xfd" + b"\xff" * 6

    def test_read_memory_short(self):
        """Fewer bytes than requested is a protocol error."""
        handle = MockHandle([response(1, b"\x00" * 4)])
        with pytest.raises(ProtocolError, match="Short read"):
            Device(handle, V1Framer()).read_memory(MemorySpace.PROGRAM, 0, 32)


class TestDeviceLifecycle:
    """Tests for close and context manager use."""

    def test_context_manager_closes(self):
        """Leaving the block closes the handle once."""
        handle = MockHandle()
        with Device(handle, V1Framer()) as dev:
            assert dev.path == "usb:001:002"
        assert handle.closed
        dev.close()


def make_usb_device(vid=0x0416, pid=0x511C, bus=1, address=7):
    """A pyusb device mock with one HID interface."""
    dev = MagicMock()
    dev.idVendor = vid
    dev.idProduct = pid
    dev.bus = bus
    dev.address = address
    dev.is_kernel_driver_active.return_value = False
    return dev


class TestUsbHandle:
    """Tests for UsbHandle."""

    @patch("nuvoprog.device.usb.util")
    def test_claims_hid_interface(self, mock_util):
        """The HID interface is claimed with the model's endpoints."""
        intf = Mock(bInterfaceNumber=0)
        mock_util.find_descriptor.return_value = intf
        dev = make_usb_device()

        handle = UsbHandle(dev, PROGRAMMERS[(0x0416, 0x511C)])
        assert handle.path == "usb:001:007"
        mock_util.claim_interface.assert_called_once_with(dev, 0)

        dev.write.return_value = 64
        assert handle.write(bytes(64)) == 64
        dev.write.assert_called_once_with(0x04, bytes(64), 5000)

        dev.read.return_value = [0] * 64
        assert handle.read(64) == bytes(64)
        dev.read.assert_called_once_with(0x83, 64, 5000)

        handle.close()
        mock_util.release_interface.assert_called_once_with(dev, 0)
        mock_util.dispose_resources.assert_called_once_with(dev)

    @patch("nuvoprog.device.usb.util")
    def test_detaches_kernel_driver(self, mock_util):
        """An active kernel driver is detached first."""
        mock_util.find_descriptor.return_value = Mock(bInterfaceNumber=0)
        dev = make_usb_device()
        dev.is_kernel_driver_active.return_value = True

        UsbHandle(dev, PROGRAMMERS[(0x0416, 0x511C)])
        dev.detach_kernel_driver.assert_called_once_with(0)

    @patch("nuvoprog.device.usb.util")
    def test_no_hid_interface(self, mock_util):
        """Devices without a HID interface are rejected."""
        mock_util.find_descriptor.return_value = None
        with pytest.raises(TransportError, match="no HID interface"):
            UsbHandle(make_usb_device(), PROGRAMMERS[(0x0416, 0x511C)])

    @patch("nuvoprog.device.usb.util")
    def test_missing_endpoint_releases_interface(self, mock_util):
        """A claimed interface is released if its endpoints are missing."""
        # HID interface found, no interrupt endpoint on it
        mock_util.find_descriptor.side_effect = [Mock(bInterfaceNumber=1), None]
        dev = make_usb_device(pid=0x5200)

        with pytest.raises(TransportError, match="missing endpoint"):
            UsbHandle(dev, PROGRAMMERS[(0x0416, 0x5200)])
        mock_util.claim_interface.assert_called_once_with(dev, 1)
        mock_util.release_interface.assert_called_once_with(dev, 1)
        mock_util.dispose_resources.assert_called_once_with(dev)

    @patch("nuvoprog.device.usb.util")
    def test_timeout_becomes_transport_error(self, mock_util):
        """pyusb timeouts are reported as transport errors."""
        mock_util.find_descriptor.return_value = Mock(bInterfaceNumber=0)
        dev = make_usb_device()
        dev.read.side_effect = usb.core.USBTimeoutError("timeout")

        handle = UsbHandle(dev, PROGRAMMERS[(0x0416, 0x511C)])
        with pytest.raises(TransportError, match="Timeout waiting for response"):
            handle.read(64)


class TestFindDevices:
    """Tests for find_devices."""

    @patch("nuvoprog.device.UsbHandle")
    @patch("nuvoprog.device.usb.core.find")
    def test_opens_known_programmers(self, mock_find, mock_handle):
        """Each match becomes a Device with its model's framer."""
        mock_find.return_value = iter([
            make_usb_device(pid=0x511D),
            make_usb_device(pid=0x5201, address=8),
        ])

        devices = find_devices()
        assert len(devices) == 2
        assert isinstance(devices[0].framer, V1Framer)
        assert isinstance(devices[1].framer, V2Framer)

    @patch("nuvoprog.device.usb.core.find")
    def test_custom_match_filters_ids(self, mock_find):
        """Only listed VID:PID pairs match."""
        mock_find.return_value = iter([])
        assert find_devices() == []

        match = mock_find.call_args.kwargs["custom_match"]
        assert match(make_usb_device(pid=0x5200))
        assert not match(make_usb_device(pid=0x1234))
        assert not match(make_usb_device(vid=0x1234, pid=0x511C))

    @patch("nuvoprog.device.usb.core.find")
    def test_no_backend(self, mock_find):
        """Missing libusb is a transport error."""
        mock_find.side_effect = usb.core.NoBackendError("No backend available")
        with pytest.raises(TransportError, match="No USB backend"):
            find_devices()

    @patch("nuvoprog.device.UsbHandle")
    @patch("nuvoprog.device.usb.core.find")
    def test_open_failure_closes_others(self, mock_find, mock_handle):
        """If one programmer cannot be opened, the others are closed."""
        first = Mock()
        mock_handle.side_effect = [first, usb.core.USBError("Access denied")]
        mock_find.return_value = iter([make_usb_device(), make_usb_device(address=8)])

        with pytest.raises(TransportError, match="Access denied"):
            find_devices()
        first.close.assert_called_once()
