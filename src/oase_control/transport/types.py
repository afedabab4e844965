"""Core types for the transport layer."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum


class TransportType(StrEnum):
    UDP = "udp"
    TLS = "tls"


@dataclass
class PendingRequest:
    """The single request awaiting a reply on a channel.

    Attributes:
        future: Resolved with the raw reply frame, or failed with a transport error
        sent_at: loop.time() when the slot was opened
        timeout_seconds: Deadline relative to sent_at
        correlation_id: Correlation ID for observability
        timeout_handle: Timer that expires the slot
    """

    future: asyncio.Future[bytes]
    sent_at: float
    timeout_seconds: float
    correlation_id: str = ""
    timeout_handle: asyncio.TimerHandle | None = None

    @property
    def done(self) -> bool:
        return self.future.done()
