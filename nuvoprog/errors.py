# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Exception hierarchy for nuvoprog.

Every error a user can cause (bad files, bad arguments, a misbehaving
programmer) derives from NuvoprogError, so the command line tool can
report them with a single except clause:

    NuvoprogError
    ├── FormatError         - malformed Intel HEX input
    ├── RangeError          - block outside the target's memory
    ├── UsageError          - invalid combination of inputs
    ├── ConfigError         - unusable configuration bytes or document
    ├── DeviceError         - wrong/missing programmer or target
    ├── VerifyError         - flash contents differ after programming
    └── TransportError      - USB I/O failure
        └── ProtocolError   - framing / sequencing / response errors

InvariantError sits outside this tree: it means nuvoprog
itself is broken, not that the input was bad.
"""


class NuvoprogError(Exception):
    """Base exception for all user-facing nuvoprog errors."""
    pass


class FormatError(NuvoprogError):
    """Malformed Intel HEX record."""
    pass


class InvalidPrefixError(FormatError):
    """Record does not start with ':'."""

    def __init__(self, message: str = "Colon prefix missing"):
        super().__init__(message)


class InvalidHexError(FormatError):
    """Record contains a character that is not a hex digit."""

    def __init__(self, message: str = "Invalid hex digit"):
        super().__init__(message)


class InvalidTerminatorError(FormatError):
    """Record is followed by something other than CR, LF or end of file."""

    def __init__(self, message: str = "Invalid line ending"):
        super().__init__(message)


class ChecksumError(FormatError):
    """Record checksum does not match its contents."""

    def __init__(self, message: str = "Invalid checksum"):
        super().__init__(message)


class RecordLengthError(FormatError):
    """Payload length is invalid for the record type."""

    def __init__(self, message: str = "Length invalid for record"):
        super().__init__(message)


class InvalidRecordTypeError(FormatError):
    """Record type byte is not one of the six defined types."""
    pass


class TruncatedRecordError(FormatError):
    """Input ended in the middle of a record."""

    def __init__(self, message: str = "Unexpected end of input inside record"):
        super().__init__(message)


class RangeError(NuvoprogError):
    """Image block lies outside the region it was loaded into."""
    pass


class UsageError(NuvoprogError):
    """Invalid combination of inputs, detected before any I/O."""
    pass


class ConfigError(NuvoprogError):
    """Configuration bytes or document cannot be used."""
    pass


class DeviceError(NuvoprogError):
    """Programmer or target is missing, ambiguous, outdated or unsupported."""
    pass


class VerifyError(NuvoprogError):
    """Flash contents read back differ from what was written."""
    pass


class TransportError(NuvoprogError):
    """Base exception for transport errors."""
    pass


class ProtocolError(TransportError):
    """Protocol-level error (unexpected response, etc.)."""
    pass


class FrameLengthError(ProtocolError):
    """Received frame has the wrong size."""

    def __init__(self, message: str = "Frame length incorrect"):
        super().__init__(message)


class BodyTooLongError(ProtocolError):
    """Frame body exceeds the framer's maximum."""

    def __init__(self, message: str = "Body length too long"):
        super().__init__(message)


class WriteSizeError(ProtocolError):
    """Transport accepted fewer bytes than a full frame."""

    def __init__(self, message: str = "Write of incorrect size"):
        super().__init__(message)


class ReadSizeError(ProtocolError):
    """Transport returned fewer bytes than a full frame."""

    def __init__(self, message: str = "Read of incorrect size"):
        super().__init__(message)


class SequenceError(ProtocolError):
    """No frame with the expected sequence number arrived."""

    def __init__(self, message: str = "Incorrect sequence number"):
        super().__init__(message)


class ResponseMismatchError(ProtocolError):
    """Response does not echo the command it answers."""
    pass


class InvariantError(RuntimeError):
    """
    Internal consistency check failed.

    Raised when nuvoprog detects a bug in itself (for example a
    configuration codec whose encoder and decoder disagree). Callers
    should treat it as fatal.
    """
    pass
