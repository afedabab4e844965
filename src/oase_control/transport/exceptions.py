"""Exception types for transport and connection lifecycle errors.

Extends the protocol exception hierarchy so one ``except OaseProtocolError``
covers decode, transport and lifecycle failures alike.
"""

from __future__ import annotations

from oase_control.protocol.exceptions import OaseProtocolError


class ChannelUnavailableError(OaseProtocolError):
    """Channel is not connected (no datagram endpoint, no device stream).

    Attributes:
        channel: Channel name ("udp" or "tls")
    """

    def __init__(self, channel: str, reason: str = "not connected"):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Channel {channel} unavailable: {reason}")


class ChannelBusyError(OaseProtocolError):
    """A request is already pending on the channel.

    The existing pending request is left untouched.
    """

    def __init__(self, channel: str):
        self.channel = channel
        super().__init__(f"Channel {channel} already has a request in flight")


class TransportSendError(OaseProtocolError):
    """Writing to the channel failed."""

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Send on {channel} failed: {reason}")


class RequestTimeoutError(OaseProtocolError):
    """No reply arrived before the request deadline.

    Attributes:
        channel: Channel name
        timeout_seconds: Deadline that was exceeded
        correlation_id: Correlation ID of the request for log lookups
    """

    def __init__(self, channel: str, timeout_seconds: float, correlation_id: str = ""):
        self.channel = channel
        self.timeout_seconds = timeout_seconds
        self.correlation_id = correlation_id
        super().__init__(f"No reply on {channel} within {timeout_seconds}s")


class ChannelClosedError(OaseProtocolError):
    """Channel was closed (or the device disconnected) while a request was pending."""

    def __init__(self, channel: str, reason: str = "closed"):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Channel {channel} closed: {reason}")


class UnsupportedDeviceError(OaseProtocolError):
    """Discovery reply identifies a device family this engine does not drive."""

    def __init__(self, long_name: str):
        self.long_name = long_name
        super().__init__(f"Unsupported device: {long_name!r}")


class HandoffError(OaseProtocolError):
    """Device refused the TCP handoff request."""

    def __init__(self, reason: str, connection_count: int = 0):
        self.reason = reason
        self.connection_count = connection_count
        super().__init__(f"TCP handoff failed: {reason} (connections: {connection_count})")


class HandshakeTimeoutError(OaseProtocolError):
    """Device did not dial back and complete the TLS handshake in time."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Device did not connect within {timeout_seconds}s")


class AuthenticationError(OaseProtocolError):
    """Password check failed. Fatal: retrying cannot succeed without new credentials."""

    def __init__(self, reason: str = "password rejected"):
        self.reason = reason
        super().__init__(f"Authentication failed: {reason}")


class SessionFailedError(OaseProtocolError):
    """Session ended and needs a full restart (poll budget exhausted, device gone)."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Session failed: {reason}")
