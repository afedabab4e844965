"""TLS listener the device dials back into after a TCP handoff.

Role reversal: the engine is the server, the device the client. Only one
device connection is kept; a new connection replaces the old one.
"""

from __future__ import annotations

import asyncio
import socket
import ssl
from collections.abc import Callable

from oase_control.logging_abstraction import get_logger
from oase_control.protocol.exceptions import PacketFramingError
from oase_control.protocol.packet_framer import PacketFramer
from oase_control.transport.channel import DEFAULT_REQUEST_TIMEOUT, Channel
from oase_control.transport.exceptions import ChannelUnavailableError, HandshakeTimeoutError
from oase_control.transport.types import TransportType

logger = get_logger(__name__)

READ_CHUNK_SIZE = 4096
# Interoperability constraints matching the device firmware
SSL_HANDSHAKE_TIMEOUT = 10.0
STREAM_IDLE_TIMEOUT = 7200.0


class StreamChannel(Channel):
    """Persistent TLS stream accepted from the device."""

    transport_type = TransportType.TLS

    def __init__(
        self,
        ssl_context: ssl.SSLContext,
        host: str = "0.0.0.0",
        port: int = 5999,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        ssl_handshake_timeout: float = SSL_HANDSHAKE_TIMEOUT,
        idle_timeout: float = STREAM_IDLE_TIMEOUT,
        on_disconnect: Callable[[str], None] | None = None,
    ) -> None:
        super().__init__(request_timeout)
        self.ssl_context = ssl_context
        self.host = host
        self.port = port
        self.ssl_handshake_timeout = ssl_handshake_timeout
        self.idle_timeout = idle_timeout
        self.on_disconnect = on_disconnect
        self.framer = PacketFramer()
        self.handshake_complete = asyncio.Event()
        self.peer: tuple[str, int] | None = None
        self._server: asyncio.Server | None = None
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task[None] | None = None

    @property
    def is_available(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    @property
    def listen_port(self) -> int:
        """Port the device must dial; the bound port when listening on port 0."""
        if self._server is not None and self._server.sockets:
            return int(self._server.sockets[0].getsockname()[1])
        return self.port

    async def connect(self) -> None:
        """Start listening (idempotent). The device connection arrives later."""
        if self._server is not None:
            return
        try:
            self._server = await asyncio.start_server(
                self._handle_client,
                host=self.host,
                port=self.port,
                ssl=self.ssl_context,
                ssl_handshake_timeout=self.ssl_handshake_timeout,
            )
        except OSError as e:
            logger.error("Failed to start TLS listener on %s:%d: %s", self.host, self.port, e)
            raise ChannelUnavailableError(self.name, str(e)) from e
        logger.info(
            "TLS listener started - waiting for device connection",
            extra={"host": self.host, "port": self.listen_port},
        )

    async def wait_for_handshake(self, timeout: float | None = None) -> None:
        """Block until a device has connected and finished the TLS handshake.

        Raises:
            HandshakeTimeoutError: ``timeout`` elapsed first (None waits forever)

        """
        if timeout is None:
            await self.handshake_complete.wait()
            return
        try:
            await asyncio.wait_for(self.handshake_complete.wait(), timeout=timeout)
        except TimeoutError as e:
            raise HandshakeTimeoutError(timeout) from e

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        if self._writer is not None:
            logger.warning("New device connection replaces the existing one", extra={"peer": peer})
            self._drop_connection("replaced")

        self._configure_socket(writer)
        self._reader = reader
        self._writer = writer
        self.peer = peer
        self.framer.reset()
        self._reader_task = asyncio.current_task()

        cipher = writer.get_extra_info("cipher")
        logger.info("Device connected", extra={"peer": peer, "cipher": cipher})
        self.handshake_complete.set()

        reason = "closed by device"
        try:
            await self._read_loop(reader)
        except TimeoutError:
            reason = f"idle for {self.idle_timeout}s"
        except PacketFramingError as e:
            reason = str(e)
        except OSError as e:
            reason = str(e) or type(e).__name__
        except asyncio.CancelledError:
            reason = "cancelled"
            raise
        finally:
            if self._writer is writer:
                logger.info("Device disconnected", extra={"peer": peer, "reason": reason})
                self._drop_connection(reason)
            writer.close()

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        while True:
            data = await asyncio.wait_for(reader.read(READ_CHUNK_SIZE), timeout=self.idle_timeout)
            if not data:
                return
            for frame in self.framer.feed(data):
                logger.debug("TLS <- %s", frame[:32].hex(), extra={"length": len(frame)})
                self._deliver(frame)

    def _configure_socket(self, writer: asyncio.StreamWriter) -> None:
        sock = writer.get_extra_info("socket")
        if sock is None:
            return
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            if hasattr(socket, "TCP_KEEPIDLE"):
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, int(self.idle_timeout))
        except OSError as e:
            logger.debug("Could not set keepalive on device socket: %s", e)

    def _write(self, data: bytes) -> None:
        if self._writer is None:
            raise ChannelUnavailableError(self.name)
        logger.debug("TLS -> %s", data[:32].hex(), extra={"length": len(data)})
        self._writer.write(data)

    def _drop_connection(self, reason: str) -> None:
        """Forget the device stream and surface the disconnect. Never raises."""
        writer = self._writer
        self._reader = None
        self._writer = None
        self.peer = None
        self._reader_task = None
        self.handshake_complete.clear()
        self.framer.reset()
        if writer is not None and not writer.is_closing():
            writer.close()
        self._closed(reason)
        if self.on_disconnect is not None:
            try:
                self.on_disconnect(reason)
            except Exception:
                logger.exception("Disconnect callback failed")

    async def close(self) -> None:
        reader_task = self._reader_task
        if self._writer is not None:
            self._drop_connection("closed")
        if reader_task is not None and reader_task is not asyncio.current_task() and not reader_task.done():
            reader_task.cancel()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        self._closed("closed")
