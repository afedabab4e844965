"""Transport layer: channels, request correlation and the connection lifecycle."""

from oase_control.transport.certificates import CertificateProvider
from oase_control.transport.channel import Channel
from oase_control.transport.connection_manager import ConnectionManager, ConnectionState
from oase_control.transport.correlator import RequestCorrelator
from oase_control.transport.datagram import DatagramChannel
from oase_control.transport.device_operations import DeviceOperations
from oase_control.transport.exceptions import (
    AuthenticationError,
    ChannelBusyError,
    ChannelClosedError,
    ChannelUnavailableError,
    HandoffError,
    HandshakeTimeoutError,
    RequestTimeoutError,
    SessionFailedError,
    TransportSendError,
    UnsupportedDeviceError,
)
from oase_control.transport.retry_policy import BackoffPolicy
from oase_control.transport.stream_server import StreamChannel
from oase_control.transport.types import PendingRequest, TransportType

__all__ = [
    "AuthenticationError",
    "BackoffPolicy",
    "CertificateProvider",
    "Channel",
    "ChannelBusyError",
    "ChannelClosedError",
    "ChannelUnavailableError",
    "ConnectionManager",
    "ConnectionState",
    "DatagramChannel",
    "DeviceOperations",
    "HandoffError",
    "HandshakeTimeoutError",
    "PendingRequest",
    "RequestCorrelator",
    "RequestTimeoutError",
    "SessionFailedError",
    "StreamChannel",
    "TransportSendError",
    "TransportType",
    "UnsupportedDeviceError",
]
