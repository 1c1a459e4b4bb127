"""Custom exception types for Teletask protocol errors.

This module defines the exception hierarchy for codec-related errors. Decode
failures are recoverable: the offending frame is dropped and the stream
continues.
"""

from __future__ import annotations


class TeletaskError(Exception):
    """Base exception for every error raised by the Teletask client."""


class TeletaskProtocolError(TeletaskError):
    """Base exception for all Teletask protocol (codec) errors.

    All frame-level exceptions inherit from this base class, enabling
    catch-all error handling when needed while maintaining specific
    exception types for detailed handling.
    """


class DecodeError(TeletaskProtocolError):
    """Frame cannot be decoded.

    Raised when frame parsing fails due to malformed data, an unknown
    command/function/state code, an invalid length, or a missing start byte.

    Attributes:
        reason: Specific failure reason (e.g., "too_short", "unknown_function")
        data_preview: First 16 bytes of frame data

    """

    def __init__(self, reason: str, data: bytes = b"") -> None:
        self.reason: str = reason
        self.data_preview: bytes = bytes(data[:16]) if data else b""
        super().__init__(f"Frame decode failed: {reason}")


class ChecksumMismatchError(DecodeError):
    """Frame checksum does not match the checksum computed over its bytes.

    Attributes:
        expected: Checksum computed from the frame contents
        actual: Checksum byte carried by the frame

    """

    def __init__(self, expected: int, actual: int, data: bytes = b"") -> None:
        self.expected: int = expected
        self.actual: int = actual
        super().__init__(f"checksum_mismatch (expected 0x{expected:02x}, got 0x{actual:02x})", data)


class EncodeError(TeletaskProtocolError):
    """A logical value has no wire representation in the active profile.

    Attributes:
        reason: Specific failure reason (e.g., "unsupported_command")

    """

    def __init__(self, reason: str) -> None:
        self.reason: str = reason
        super().__init__(f"Frame encode failed: {reason}")
