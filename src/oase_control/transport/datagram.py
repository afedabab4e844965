"""UDP channel to the device's fixed discovery port."""

from __future__ import annotations

import asyncio

from oase_control.logging_abstraction import get_logger
from oase_control.transport.channel import DEFAULT_REQUEST_TIMEOUT, Channel
from oase_control.transport.exceptions import ChannelUnavailableError
from oase_control.transport.types import TransportType

logger = get_logger(__name__)

DEVICE_UDP_PORT = 5959
CONNECT_TIMEOUT = 5.0


class _OaseDatagramProtocol(asyncio.DatagramProtocol):
    """asyncio DatagramProtocol that hands every datagram to a DatagramChannel."""

    def __init__(self, channel: DatagramChannel):
        self._channel = channel

    def datagram_received(self, data: bytes, addr: tuple[str | object, ...]) -> None:
        logger.debug("UDP <- %s: %s", addr, data[:32].hex())
        self._channel._deliver(data)

    def error_received(self, exc: Exception) -> None:
        # ICMP port unreachable and friends; the request deadline reports the failure
        logger.warning("UDP error from device: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        self._channel._on_connection_lost(exc)


class DatagramChannel(Channel):
    """Connected UDP endpoint; each request waits for exactly one datagram."""

    transport_type = TransportType.UDP

    def __init__(
        self,
        host: str,
        port: int = DEVICE_UDP_PORT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        super().__init__(request_timeout)
        self.host = host
        self.port = port
        self._transport: asyncio.DatagramTransport | None = None

    @property
    def is_available(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    async def connect(self) -> None:
        """Open the UDP socket via create_datagram_endpoint (idempotent)."""
        if self.is_available:
            return
        try:
            loop = asyncio.get_running_loop()
            transport, _protocol = await asyncio.wait_for(
                loop.create_datagram_endpoint(
                    lambda: _OaseDatagramProtocol(self),
                    remote_addr=(self.host, self.port),
                ),
                timeout=CONNECT_TIMEOUT,
            )
        except (OSError, TimeoutError) as e:
            logger.error("Failed to open UDP channel to %s:%d: %s", self.host, self.port, e)
            raise ChannelUnavailableError(self.name, str(e)) from e

        self._transport = transport
        logger.debug("Opened UDP channel to %s:%d", self.host, self.port)

    def _write(self, data: bytes) -> None:
        if self._transport is None:
            raise ChannelUnavailableError(self.name)
        self._transport.sendto(data)

    async def close(self) -> None:
        transport = self._transport
        self._transport = None
        if transport is not None:
            transport.close()
        self._closed("closed")

    def _on_connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            logger.warning("UDP channel lost: %s", exc)
        self._transport = None
        self._closed(str(exc) if exc else "connection lost")
