"""Request/response pairing on a single channel.

The reply to a request is the next frame that arrives on the same channel.
Transaction ids are not compared; strict request/reply alternation per
channel is a precondition, enforced by the channel's single pending slot.
"""

from __future__ import annotations

import asyncio
import time

from oase_control.correlation import new_request_id
from oase_control.logging_abstraction import get_logger
from oase_control.metrics import record_decode_error, record_request, record_request_latency
from oase_control.protocol.exceptions import PacketDecodeError
from oase_control.protocol.oase_protocol import OaseProtocol
from oase_control.protocol.packet_types import OasePacket, packet_type_name
from oase_control.transport.channel import Channel
from oase_control.transport.exceptions import (
    ChannelClosedError,
    ChannelUnavailableError,
    RequestTimeoutError,
    TransportSendError,
)

logger = get_logger(__name__)


class RequestCorrelator:
    """Send one request and return the decoded reply packet."""

    def __init__(self, protocol: OaseProtocol) -> None:
        self.protocol = protocol

    async def send_request(
        self,
        packet_type: int,
        payload: bytes,
        channel: Channel,
        timeout: float | None = None,
    ) -> OasePacket:
        """Send a request on ``channel`` and wait for the next inbound frame.

        Args:
            packet_type: Message type (PACKET_TYPE_* constant)
            payload: Request payload
            channel: Channel to use; must be connected and idle
            timeout: Reply deadline (default: the channel's request timeout)

        Returns:
            Decoded reply packet

        Raises:
            ChannelUnavailableError: Channel not connected
            ChannelBusyError: Another request is pending on the channel
            TransportSendError: Write failed (the pending slot is cleared)
            RequestTimeoutError: No reply before the deadline
            ChannelClosedError: Channel closed while waiting
            PacketDecodeError: Reply frame is malformed

        """
        type_name = packet_type_name(packet_type)
        if not channel.is_available:
            record_request(channel.name, type_name, "unavailable")
            raise ChannelUnavailableError(channel.name)

        request_id = new_request_id()
        pending = channel.open_request(timeout, request_id)
        frame = self.protocol.encode_packet(packet_type, payload)

        start_time = time.perf_counter()
        try:
            channel.send(frame)
        except (TransportSendError, ChannelUnavailableError):
            channel.cancel_request(pending)
            record_request(channel.name, type_name, "send_error")
            logger.warning(
                "Send failed",
                extra={"channel": channel.name, "packet_type": type_name, "request_id": request_id},
            )
            raise

        logger.debug(
            "Request sent",
            extra={
                "channel": channel.name,
                "packet_type": type_name,
                "request_id": request_id,
                "length": len(payload),
            },
        )

        try:
            raw = await channel.receive(pending)
        except RequestTimeoutError:
            record_request(channel.name, type_name, "timeout")
            raise
        except ChannelClosedError:
            record_request(channel.name, type_name, "closed")
            raise
        except asyncio.CancelledError:
            channel.cancel_request(pending)
            raise

        try:
            packet = OaseProtocol.decode_packet(raw)
        except PacketDecodeError as e:
            record_decode_error(e.reason)
            record_request(channel.name, type_name, "decode_error")
            raise

        elapsed = time.perf_counter() - start_time
        record_request(channel.name, type_name, "success")
        record_request_latency(channel.name, type_name, elapsed)
        logger.debug(
            "Reply received",
            extra={
                "channel": channel.name,
                "packet_type": packet_type_name(packet.packet_type),
                "txn": packet.transaction_id,
                "request_id": request_id,
                "elapsed_ms": round(elapsed * 1000, 2),
            },
        )
        return packet
