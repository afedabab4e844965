"""OASE protocol encoder/decoder implementation.

Header encoding and decoding plus the payload layouts of every message the
engine exchanges with an FM-Master controller.
"""

from __future__ import annotations

import re
import struct
import time

from oase_control.logging_abstraction import get_logger
from oase_control.protocol.exceptions import PacketDecodeError, ResponseTooShortError
from oase_control.protocol.packet_types import (
    HEADER_LENGTH,
    MAGIC_DELIMITER,
    MAX_TRANSACTION_ID,
    PROTOCOL_VERSION,
    AliveReply,
    DiscoveryReply,
    LiveSceneReply,
    OasePacket,
    SocketScene,
    TcpHandoffReply,
    packet_type_name,
)

# Payload sizes
DISCOVERY_REPLY_MIN_LENGTH = 324
ALIVE_REPLY_MIN_LENGTH = 33
TCP_HANDOFF_REQUEST_LENGTH = 7
TCP_HANDOFF_REPLY_MIN_LENGTH = 2
PASSWORD_LENGTH = 64
PASSWORD_REPLY_LENGTH = 1
LIVE_SCENE_REPLY_MIN_LENGTH = 11
SET_SCENE_REPLY_MIN_LENGTH = 1
SOCKET_SCENE_LENGTH = 5

SUCCESS_FLAG = 0x01
OUTLET_ON = 0xFF

_HEADER = struct.Struct("<4sIBBH4x")
_UNICODE_ESCAPE = re.compile(r"\\u([0-9a-fA-F]{4})")

logger = get_logger(__name__)


def _c_string(raw: bytes) -> str:
    """Decode a fixed-width field, dropping everything from the first NUL."""
    return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")


def _require(message: str, payload: bytes, minimum: int, *, exact: bool = False) -> None:
    size = len(payload)
    if size < minimum or (exact and size != minimum):
        raise ResponseTooShortError(message, minimum, size, payload)


class OaseProtocol:
    """OASE protocol codec.

    One instance owns the transaction counter for a session. The counter
    advances exactly once per encoded packet, whichever channel carries it.
    Decoding and the payload layouts are stateless and exposed as static methods.
    """

    def __init__(self, initial_transaction_id: int = 0) -> None:
        self._transaction_id = initial_transaction_id & MAX_TRANSACTION_ID

    @property
    def transaction_id(self) -> int:
        """Transaction id the next encoded packet will carry."""
        return self._transaction_id

    def next_transaction_id(self) -> int:
        current = self._transaction_id
        self._transaction_id = (current + 1) & MAX_TRANSACTION_ID
        return current

    def encode_packet(self, packet_type: int, payload: bytes = b"") -> bytes:
        """Encode a complete frame and advance the transaction counter.

        Args:
            packet_type: Message type (PACKET_TYPE_* constant)
            payload: Message payload

        Returns:
            Header followed by payload

        Example:
            >>> from oase_control.protocol.packet_types import PACKET_TYPE_ALIVE
            >>> frame = OaseProtocol().encode_packet(PACKET_TYPE_ALIVE)
            >>> frame.hex()
            '5c234f41000000000200001100000000'

        """
        transaction_id = self.next_transaction_id()
        header = _HEADER.pack(MAGIC_DELIMITER, len(payload), PROTOCOL_VERSION, transaction_id, packet_type)

        logger.debug(
            "Encoded packet: type=%s, txn=%d, length=%d",
            packet_type_name(packet_type),
            transaction_id,
            len(payload),
        )

        return header + payload

    @staticmethod
    def decode_packet(data: bytes, strict_length: bool = False) -> OasePacket:
        """Decode a frame into header fields and payload.

        Args:
            data: Complete frame bytes
            strict_length: Also reject frames whose payload size differs from
                the declared length

        Raises:
            PacketDecodeError: Frame shorter than the header ("too_short"), bad
                magic ("invalid_magic"), or declared length mismatch
                ("length_mismatch", only with strict_length)

        """
        if len(data) < HEADER_LENGTH:
            error_reason = "too_short"
            raise PacketDecodeError(error_reason, data)

        magic, length, version, transaction_id, packet_type = _HEADER.unpack_from(data)
        if magic != MAGIC_DELIMITER:
            error_reason = "invalid_magic"
            raise PacketDecodeError(error_reason, data)

        payload = bytes(data[HEADER_LENGTH:])
        if strict_length and len(payload) != length:
            error_reason = "length_mismatch"
            raise PacketDecodeError(error_reason, data)

        return OasePacket(
            length=length,
            version=version,
            transaction_id=transaction_id,
            packet_type=packet_type,
            payload=payload,
        )

    @staticmethod
    def declared_length(header: bytes) -> int:
        """Payload length declared in a header (no magic check)."""
        if len(header) < HEADER_LENGTH:
            error_reason = "too_short"
            raise PacketDecodeError(error_reason, header)
        return int.from_bytes(header[4:8], "little")

    # Request payloads

    @staticmethod
    def encode_tcp_handoff(port: int, timestamp: int | None = None) -> bytes:
        """Reserved byte, listener port (u16 LE), unix timestamp (u32 LE)."""
        if timestamp is None:
            timestamp = int(time.time())
        return struct.pack("<BHI", 0, port, timestamp & 0xFFFFFFFF)

    @staticmethod
    def encode_password(password: str, unicode_escaped: bool = False) -> bytes:
        """Encode a password into the fixed 64-byte buffer.

        With ``unicode_escaped`` set, ``\\uXXXX`` sequences are turned into the
        characters they name before UTF-8 encoding. Longer passwords are truncated,
        shorter ones zero padded.
        """
        if unicode_escaped:
            password = _UNICODE_ESCAPE.sub(lambda match: chr(int(match.group(1), 16)), password)
        encoded = password.encode("utf-8")[:PASSWORD_LENGTH]
        return encoded.ljust(PASSWORD_LENGTH, b"\x00")

    # Reply payloads

    @staticmethod
    def parse_discovery(payload: bytes) -> DiscoveryReply:
        _require("discovery", payload, DISCOVERY_REPLY_MIN_LENGTH)
        return DiscoveryReply(
            hardware_type=payload[0],
            device_index=payload[1],
            name=_c_string(payload[2:34]),
            serial=_c_string(payload[34:46]),
            long_name=_c_string(payload[66:130]),
            order_index=int.from_bytes(payload[130:134], "little"),
            firmware=payload[187],
            remote_memory_version=payload[192],
            config_memory_version=payload[193],
            firmware_low=payload[194],
            firmware_high=payload[195],
            wifi_channel=payload[196],
            network=payload[197],
            status=_c_string(payload[199:323]),
        )

    @staticmethod
    def parse_alive(payload: bytes) -> AliveReply:
        _require("alive", payload, ALIVE_REPLY_MIN_LENGTH)
        return AliveReply(serial=_c_string(payload[0:12]))

    @staticmethod
    def parse_tcp_handoff(payload: bytes) -> TcpHandoffReply:
        _require("tcp_handoff", payload, TCP_HANDOFF_REPLY_MIN_LENGTH)
        return TcpHandoffReply(success=payload[0] == SUCCESS_FLAG, connection_count=payload[1])

    @staticmethod
    def parse_password_check(payload: bytes) -> bool:
        _require("password_check", payload, PASSWORD_REPLY_LENGTH, exact=True)
        return payload[0] == SUCCESS_FLAG

    @staticmethod
    def parse_live_scene(payload: bytes) -> LiveSceneReply:
        """Scene header (11 bytes) followed by ``sub_length`` bytes of scene data."""
        _require("get_live_scene", payload, LIVE_SCENE_REPLY_MIN_LENGTH)
        scene_type, scene_id, count, sub_type, sub_length = struct.unpack_from("<BIIBB", payload)
        data = payload[LIVE_SCENE_REPLY_MIN_LENGTH : LIVE_SCENE_REPLY_MIN_LENGTH + sub_length]
        if len(data) < sub_length:
            raise ResponseTooShortError(
                "get_live_scene",
                LIVE_SCENE_REPLY_MIN_LENGTH + sub_length,
                len(payload),
                payload,
            )
        return LiveSceneReply(
            scene_type=scene_type,
            scene_id=scene_id,
            count=count,
            sub_type=sub_type,
            sub_length=sub_length,
            data=bytes(data),
        )

    @staticmethod
    def parse_set_live_scene(payload: bytes) -> bool:
        _require("set_live_scene", payload, SET_SCENE_REPLY_MIN_LENGTH)
        return payload[0] == SUCCESS_FLAG

    @staticmethod
    def parse_socket_scene(data: bytes) -> SocketScene:
        """Outlet flags are on only when the byte is exactly 0xFF."""
        _require("socket_scene", data, SOCKET_SCENE_LENGTH, exact=True)
        return SocketScene(
            outlets=(
                data[0] == OUTLET_ON,
                data[1] == OUTLET_ON,
                data[2] == OUTLET_ON,
                data[3] == OUTLET_ON,
            ),
            dimmer=data[4],
        )
