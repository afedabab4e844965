"""Stream packet framing for the TLS channel.

TLS reads may return partial frames, several frames, or exact boundaries.
PacketFramer buffers incoming bytes and cuts complete frames using the
declared payload length at header offset 4.
"""

from __future__ import annotations

from oase_control.logging_abstraction import get_logger
from oase_control.protocol.exceptions import PacketFramingError
from oase_control.protocol.packet_types import HEADER_LENGTH, MAGIC_DELIMITER

logger = get_logger(__name__)


class PacketFramer:
    r"""Extract complete OASE frames from a byte stream.

    Algorithm:

    1. Buffer all incoming bytes
    2. Drop anything in front of the next magic delimiter
    3. Once 16 header bytes are present, read the declared payload length
    4. Discard the delimiter and rescan if the length exceeds MAX_PACKET_SIZE
    5. Extract the frame once header + payload bytes are buffered
    6. Repeat until the buffer holds no complete frame

    Example:
        framer = PacketFramer()
        frames = framer.feed(b'\x5c\x23\x4f\x41\x01\x00')
        assert frames == []  # incomplete header

    """

    MAX_PACKET_SIZE: int = 64 * 1024
    MAX_BUFFER_SIZE: int = 4 * (MAX_PACKET_SIZE + HEADER_LENGTH)

    def __init__(self) -> None:
        self.buffer: bytearray = bytearray()

    def feed(self, data: bytes) -> list[bytes]:
        """Add data to buffer and return the list of complete frames.

        Raises:
            PacketFramingError: Buffered data would exceed MAX_BUFFER_SIZE; the
                buffer is cleared before raising

        """
        if len(self.buffer) + len(data) > self.MAX_BUFFER_SIZE:
            buffer_size = len(self.buffer) + len(data)
            self.reset()
            error_reason = "buffer_overflow"
            raise PacketFramingError(error_reason, buffer_size)
        self.buffer.extend(data)
        return self._extract_packets()

    def reset(self) -> None:
        """Drop buffered bytes (new connection)."""
        self.buffer = bytearray()

    def _resync(self) -> bool:
        """Align the buffer on the next magic delimiter.

        Returns:
            False when no delimiter is present; a trailing partial delimiter is kept.

        """
        index = self.buffer.find(MAGIC_DELIMITER)
        if index == 0:
            return True
        if index > 0:
            logger.warning(
                "Discarding %d bytes before frame delimiter",
                index,
                extra={"buffer_size": len(self.buffer)},
            )
            del self.buffer[:index]
            return True

        keep = len(MAGIC_DELIMITER) - 1
        if len(self.buffer) > keep:
            discarded = len(self.buffer) - keep
            logger.warning("Discarding %d bytes without frame delimiter", discarded)
            del self.buffer[:discarded]
        return False

    def _extract_packets(self) -> list[bytes]:
        packets: list[bytes] = []

        while self.buffer:
            if not self._resync():
                break
            if len(self.buffer) < HEADER_LENGTH:
                break

            payload_length = int.from_bytes(self.buffer[4:8], "little")
            if payload_length > self.MAX_PACKET_SIZE:
                logger.warning(
                    "Invalid packet length: %d (max %d), skipping delimiter",
                    payload_length,
                    self.MAX_PACKET_SIZE,
                    extra={"buffer_size": len(self.buffer)},
                )
                del self.buffer[: len(MAGIC_DELIMITER)]
                continue

            total_length = HEADER_LENGTH + payload_length
            if len(self.buffer) < total_length:
                # Incomplete frame, wait for more data
                break

            packets.append(bytes(self.buffer[:total_length]))
            del self.buffer[:total_length]

        return packets
