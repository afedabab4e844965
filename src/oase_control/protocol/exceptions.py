"""Exception types for OASE protocol errors.

Decoders raise instead of returning partially filled results; every error
in the engine derives from ``OaseProtocolError`` so callers can catch the
whole family in one place.
"""

from __future__ import annotations


class OaseProtocolError(Exception):
    """Base exception for all OASE protocol and transport errors."""


class PacketDecodeError(OaseProtocolError):
    """Packet cannot be decoded.

    Attributes:
        reason: Failure reason ("too_short", "invalid_magic", "length_mismatch", ...)
        data_preview: First 16 bytes of the offending data. Password payloads
            travel through the same codec, so nothing longer is retained.
    """

    def __init__(self, reason: str, data: bytes = b""):
        self.reason = reason
        self.data_preview = data[:16] if data else b""
        super().__init__(f"Packet decode failed: {reason}")


class ResponseTooShortError(PacketDecodeError):
    """Message payload is shorter than (or not exactly) the size its layout requires.

    Attributes:
        message: Name of the message layout that failed
        expected: Required payload size in bytes
        actual: Received payload size in bytes
    """

    def __init__(self, message: str, expected: int, actual: int, data: bytes = b""):
        self.message = message
        self.expected = expected
        self.actual = actual
        super().__init__("invalid length", data)
        self.args = (f"{message} reply invalid length: expected {expected} bytes, got {actual}",)


class PacketFramingError(OaseProtocolError):
    """Stream framing error.

    Attributes:
        reason: Failure reason (e.g., "packet_too_large")
        buffer_size: Size of buffer when error occurred
    """

    def __init__(self, reason: str, buffer_size: int = 0):
        self.reason = reason
        self.buffer_size = buffer_size
        super().__init__(f"Packet framing failed: {reason}")
