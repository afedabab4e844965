"""Typed device requests built on the correlator.

Each operation encodes its request payload, sends it on the channel the
device expects it on, and decodes the reply into a typed result.
"""

from __future__ import annotations

from oase_control.logging_abstraction import get_logger
from oase_control.protocol.oase_protocol import OaseProtocol
from oase_control.protocol.packet_types import (
    PACKET_TYPE_ALIVE,
    PACKET_TYPE_DISCOVERY,
    PACKET_TYPE_GET_LIVE_SCENE,
    PACKET_TYPE_PASSWORD_CHECK,
    PACKET_TYPE_SET_LIVE_SCENE,
    PACKET_TYPE_TCP_HANDOFF,
    AliveReply,
    DiscoveryReply,
    LiveSceneReply,
    TcpHandoffReply,
)
from oase_control.transport.channel import Channel
from oase_control.transport.correlator import RequestCorrelator

logger = get_logger(__name__)


class DeviceOperations:
    """Request helpers for one device.

    Discovery and handoff travel over the datagram channel; password and
    scene traffic over the stream channel. Alive works on either.
    """

    def __init__(self, correlator: RequestCorrelator, datagram: Channel, stream: Channel) -> None:
        self.correlator = correlator
        self.datagram = datagram
        self.stream = stream

    async def discover(self) -> DiscoveryReply:
        packet = await self.correlator.send_request(PACKET_TYPE_DISCOVERY, b"", self.datagram)
        reply = OaseProtocol.parse_discovery(packet.payload)
        logger.debug(
            "Discovery reply",
            extra={"name": reply.name, "serial": reply.serial, "device": reply.long_name, "status": reply.status},
        )
        return reply

    async def alive(self, channel: Channel | None = None) -> AliveReply:
        packet = await self.correlator.send_request(PACKET_TYPE_ALIVE, b"", channel or self.stream)
        return OaseProtocol.parse_alive(packet.payload)

    async def request_tcp_handoff(self, port: int, timestamp: int | None = None) -> TcpHandoffReply:
        """Ask the device to open a TLS connection to ``port`` on this host."""
        payload = OaseProtocol.encode_tcp_handoff(port, timestamp)
        packet = await self.correlator.send_request(PACKET_TYPE_TCP_HANDOFF, payload, self.datagram)
        return OaseProtocol.parse_tcp_handoff(packet.payload)

    async def check_password(self, password: str, unicode_escaped: bool = False) -> bool:
        payload = OaseProtocol.encode_password(password, unicode_escaped)
        packet = await self.correlator.send_request(PACKET_TYPE_PASSWORD_CHECK, payload, self.stream)
        return OaseProtocol.parse_password_check(packet.payload)

    async def get_live_scene(self, scene_request: bytes) -> LiveSceneReply:
        packet = await self.correlator.send_request(PACKET_TYPE_GET_LIVE_SCENE, scene_request, self.stream)
        return OaseProtocol.parse_live_scene(packet.payload)

    async def set_live_scene(self, scene: bytes) -> bool:
        packet = await self.correlator.send_request(PACKET_TYPE_SET_LIVE_SCENE, scene, self.stream)
        return OaseProtocol.parse_set_live_scene(packet.payload)
