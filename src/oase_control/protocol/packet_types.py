"""OASE packet type constants and decoded message structures.

Every frame on the wire starts with the same 16-byte header::

    offset 0  : 4 bytes  magic delimiter 5C 23 4F 41
    offset 4  : u32 LE   payload length
    offset 8  : u8       protocol version (2)
    offset 9  : u8       transaction id (wraps 255 -> 0)
    offset 10 : u16 LE   message type
    offset 12 : 4 bytes  zero
    offset 16 : payload

Message types are shared by request and reply; the reply to a discovery
request carries the device-info layout under the same type.
"""

from dataclasses import dataclass

MAGIC_DELIMITER = b"\x5c\x23\x4f\x41"
PROTOCOL_VERSION = 2
HEADER_LENGTH = 16
MAX_TRANSACTION_ID = 0xFF

# Message types (u16)
PACKET_TYPE_DISCOVERY = 4096  # Device info request / reply
PACKET_TYPE_ALIVE = 4352  # Keepalive, reply carries the serial
PACKET_TYPE_TCP_HANDOFF = 5120  # Ask the device to dial back to our TLS listener
PACKET_TYPE_PASSWORD_CHECK = 40704
PACKET_TYPE_SET_LIVE_SCENE = 50176
PACKET_TYPE_GET_LIVE_SCENE = 50432

PACKET_TYPE_NAMES: dict[int, str] = {
    PACKET_TYPE_DISCOVERY: "discovery",
    PACKET_TYPE_ALIVE: "alive",
    PACKET_TYPE_TCP_HANDOFF: "tcp_handoff",
    PACKET_TYPE_PASSWORD_CHECK: "password_check",
    PACKET_TYPE_SET_LIVE_SCENE: "set_live_scene",
    PACKET_TYPE_GET_LIVE_SCENE: "get_live_scene",
}


def packet_type_name(packet_type: int) -> str:
    """Readable name for logs and metric labels."""
    return PACKET_TYPE_NAMES.get(packet_type, f"0x{packet_type:04x}")


@dataclass(frozen=True)
class OasePacket:
    """Decoded frame.

    Attributes:
        length: Payload length declared in the header
        version: Protocol version byte
        transaction_id: Transaction counter value stamped by the sender
        packet_type: Message type (one of the PACKET_TYPE_* constants)
        payload: Bytes following the header
    """

    length: int
    version: int
    transaction_id: int
    packet_type: int
    payload: bytes


@dataclass(frozen=True)
class DiscoveryReply:
    """Device-info reply to a discovery request (324+ bytes)."""

    hardware_type: int
    device_index: int
    name: str
    serial: str
    long_name: str
    order_index: int
    firmware: int
    remote_memory_version: int
    config_memory_version: int
    firmware_low: int
    firmware_high: int
    wifi_channel: int
    network: int
    status: str


@dataclass(frozen=True)
class AliveReply:
    serial: str


@dataclass(frozen=True)
class TcpHandoffReply:
    success: bool
    connection_count: int


@dataclass(frozen=True)
class LiveSceneReply:
    """Get-live-scene reply: a header followed by an opaque device sub-payload."""

    scene_type: int
    scene_id: int
    count: int
    sub_type: int
    sub_length: int
    data: bytes


@dataclass(frozen=True)
class SocketScene:
    """FM-Master socket scene: four outlet flags plus the outlet 4 dimmer."""

    outlets: tuple[bool, bool, bool, bool]
    dimmer: int
