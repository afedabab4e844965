"""Channel contract shared by the datagram and stream transports.

A channel owns at most one PendingRequest. The next inbound frame resolves
it; the deadline timer or closing the channel fails it. Opening a second
request while one is pending raises ChannelBusyError and leaves the first
untouched.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from oase_control.logging_abstraction import get_logger
from oase_control.transport.exceptions import (
    ChannelBusyError,
    ChannelClosedError,
    ChannelUnavailableError,
    RequestTimeoutError,
    TransportSendError,
)
from oase_control.transport.types import PendingRequest, TransportType

logger = get_logger(__name__)

DEFAULT_REQUEST_TIMEOUT = 5.0


class Channel(ABC):
    """Send bytes, receive the next frame within a deadline."""

    transport_type: TransportType

    def __init__(self, request_timeout: float = DEFAULT_REQUEST_TIMEOUT) -> None:
        self.request_timeout = request_timeout
        self._pending: PendingRequest | None = None

    @property
    def name(self) -> str:
        return str(self.transport_type)

    @property
    @abstractmethod
    def is_available(self) -> bool:
        """True when send() can reach the device."""

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    def _write(self, data: bytes) -> None:
        """Hand bytes to the underlying transport. May raise OSError."""

    @abstractmethod
    async def close(self) -> None: ...

    @property
    def pending(self) -> PendingRequest | None:
        return self._pending

    @property
    def busy(self) -> bool:
        return self._pending is not None and not self._pending.done

    def open_request(self, timeout: float | None = None, correlation_id: str = "") -> PendingRequest:
        """Register the pending slot and start its deadline timer.

        Raises:
            ChannelUnavailableError: Channel is not connected
            ChannelBusyError: Another request is still pending

        """
        if not self.is_available:
            raise ChannelUnavailableError(self.name)
        if self.busy:
            raise ChannelBusyError(self.name)

        loop = asyncio.get_running_loop()
        timeout = self.request_timeout if timeout is None else timeout
        pending = PendingRequest(
            future=loop.create_future(),
            sent_at=loop.time(),
            timeout_seconds=timeout,
            correlation_id=correlation_id,
        )
        pending.timeout_handle = loop.call_later(timeout, self._expire, pending)
        self._pending = pending
        return pending

    def send(self, data: bytes) -> None:
        """Write a frame.

        Raises:
            ChannelUnavailableError: Channel is not connected
            TransportSendError: The transport rejected the write

        """
        if not self.is_available:
            raise ChannelUnavailableError(self.name)
        try:
            self._write(data)
        except OSError as e:
            raise TransportSendError(self.name, str(e)) from e

    async def receive(self, pending: PendingRequest) -> bytes:
        """Wait for the reply that resolves ``pending``.

        Raises:
            RequestTimeoutError: Deadline elapsed
            ChannelClosedError: Channel closed while waiting

        """
        try:
            return await pending.future
        finally:
            self._clear(pending)

    def cancel_request(self, pending: PendingRequest) -> None:
        """Drop a pending slot without resolving it (send failure, caller cancelled)."""
        self._clear(pending)
        if not pending.future.done():
            pending.future.cancel()

    def _clear(self, pending: PendingRequest) -> None:
        if pending.timeout_handle is not None:
            pending.timeout_handle.cancel()
            pending.timeout_handle = None
        if self._pending is pending:
            self._pending = None

    def _expire(self, pending: PendingRequest) -> None:
        self._clear(pending)
        if not pending.future.done():
            logger.debug(
                "Request on %s timed out after %.1fs",
                self.name,
                pending.timeout_seconds,
                extra={"correlation_id": pending.correlation_id},
            )
            pending.future.set_exception(
                RequestTimeoutError(self.name, pending.timeout_seconds, pending.correlation_id),
            )

    def _deliver(self, data: bytes) -> None:
        """Resolve the pending slot with an inbound frame."""
        pending = self._pending
        if pending is None or pending.done:
            logger.warning(
                "Unsolicited frame on %s dropped",
                self.name,
                extra={"length": len(data), "preview": data[:16].hex()},
            )
            return
        self._clear(pending)
        pending.future.set_result(data)

    def _fail_pending(self, exc: Exception) -> None:
        pending = self._pending
        if pending is None:
            return
        self._clear(pending)
        if not pending.future.done():
            pending.future.set_exception(exc)

    def _closed(self, reason: str) -> None:
        self._fail_pending(ChannelClosedError(self.name, reason))
