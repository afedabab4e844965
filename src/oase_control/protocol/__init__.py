"""OASE wire protocol: packet codec, message layouts and stream framing."""

from oase_control.protocol.exceptions import (
    OaseProtocolError,
    PacketDecodeError,
    PacketFramingError,
    ResponseTooShortError,
)
from oase_control.protocol.oase_protocol import OaseProtocol
from oase_control.protocol.packet_framer import PacketFramer
from oase_control.protocol.packet_types import (
    AliveReply,
    DiscoveryReply,
    LiveSceneReply,
    OasePacket,
    SocketScene,
    TcpHandoffReply,
)

__all__ = [
    "AliveReply",
    "DiscoveryReply",
    "LiveSceneReply",
    "OasePacket",
    "OaseProtocol",
    "OaseProtocolError",
    "PacketDecodeError",
    "PacketFramer",
    "PacketFramingError",
    "ResponseTooShortError",
    "SocketScene",
    "TcpHandoffReply",
]
