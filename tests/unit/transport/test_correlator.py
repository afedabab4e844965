"""Unit tests for RequestCorrelator.

Covers request/reply pairing on a single channel:
- Reply decoding and transaction id handling
- Busy channel rejection without advancing the transaction counter
- Timeout, send failure and decode failure outcomes
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from oase_control.protocol import OaseProtocol
from oase_control.protocol.exceptions import PacketDecodeError
from oase_control.protocol.packet_types import PACKET_TYPE_ALIVE, PACKET_TYPE_DISCOVERY
from oase_control.transport.correlator import RequestCorrelator
from oase_control.transport.exceptions import (
    ChannelBusyError,
    ChannelUnavailableError,
    RequestTimeoutError,
    TransportSendError,
)
from oase_control.transport.types import TransportType
from tests.fixtures.oase_packets import alive_payload, frame
from tests.fixtures.channels import ScriptedChannel


@pytest.fixture
def protocol() -> OaseProtocol:
    return OaseProtocol()


@pytest.fixture
def correlator(protocol: OaseProtocol) -> RequestCorrelator:
    return RequestCorrelator(protocol)


@pytest.fixture
def channel() -> ScriptedChannel:
    return ScriptedChannel(TransportType.UDP)


@pytest.mark.asyncio
async def test_reply_is_next_frame(correlator: RequestCorrelator, channel: ScriptedChannel):
    channel.replies.append(frame(PACKET_TYPE_ALIVE, alive_payload(), txn=9))

    packet = await correlator.send_request(PACKET_TYPE_ALIVE, b"", channel)

    assert packet.packet_type == PACKET_TYPE_ALIVE
    # transaction ids are not compared
    assert packet.transaction_id == 9
    assert len(channel.sent) == 1
    assert OaseProtocol.decode_packet(channel.sent[0]).transaction_id == 0
    assert channel.pending is None


@pytest.mark.asyncio
async def test_consecutive_requests_use_increasing_transaction_ids(
    correlator: RequestCorrelator, channel: ScriptedChannel
):
    channel.replies.extend([frame(PACKET_TYPE_ALIVE, alive_payload())] * 3)

    for _ in range(3):
        await correlator.send_request(PACKET_TYPE_ALIVE, b"", channel)

    txns = [OaseProtocol.decode_packet(sent).transaction_id for sent in channel.sent]
    assert txns == [0, 1, 2]


@pytest.mark.asyncio
async def test_busy_channel_rejected_without_side_effects(
    correlator: RequestCorrelator, protocol: OaseProtocol, channel: ScriptedChannel
):
    channel.replies.append(None)
    first = asyncio.create_task(correlator.send_request(PACKET_TYPE_DISCOVERY, b"", channel))
    await asyncio.sleep(0)
    assert channel.busy

    with pytest.raises(ChannelBusyError):
        await correlator.send_request(PACKET_TYPE_ALIVE, b"", channel)

    assert protocol.transaction_id == 1
    assert len(channel.sent) == 1

    with pytest.raises(RequestTimeoutError):
        await first


@pytest.mark.asyncio
async def test_timeout_recorded(correlator: RequestCorrelator, channel: ScriptedChannel):
    channel.replies.append(None)
    with (
        patch("oase_control.transport.correlator.record_request") as mock_record,
        pytest.raises(RequestTimeoutError),
    ):
        await correlator.send_request(PACKET_TYPE_ALIVE, b"", channel, timeout=0.01)

    mock_record.assert_called_with("udp", "alive", "timeout")
    assert channel.pending is None


@pytest.mark.asyncio
async def test_send_failure_clears_slot(correlator: RequestCorrelator, channel: ScriptedChannel):
    channel.replies.append(OSError("network unreachable"))

    with pytest.raises(TransportSendError):
        await correlator.send_request(PACKET_TYPE_ALIVE, b"", channel)

    assert channel.pending is None
    assert not channel.busy


@pytest.mark.asyncio
async def test_unavailable_channel(correlator: RequestCorrelator, protocol: OaseProtocol, channel: ScriptedChannel):
    channel.connected = False
    with pytest.raises(ChannelUnavailableError):
        await correlator.send_request(PACKET_TYPE_ALIVE, b"", channel)
    assert channel.sent == []
    assert protocol.transaction_id == 0


@pytest.mark.asyncio
async def test_malformed_reply_raises_decode_error(correlator: RequestCorrelator, channel: ScriptedChannel):
    channel.replies.append(b"\x00" * 20)
    with (
        patch("oase_control.transport.correlator.record_decode_error") as mock_decode_error,
        pytest.raises(PacketDecodeError),
    ):
        await correlator.send_request(PACKET_TYPE_ALIVE, b"", channel)

    mock_decode_error.assert_called_once_with("invalid_magic")


@pytest.mark.asyncio
async def test_cancelled_caller_frees_slot(correlator: RequestCorrelator, channel: ScriptedChannel):
    channel.replies.append(None)
    task = asyncio.create_task(correlator.send_request(PACKET_TYPE_ALIVE, b"", channel, timeout=10))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert channel.pending is None
