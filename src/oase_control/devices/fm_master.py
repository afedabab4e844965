"""FM-Master EGC socket scene payloads.

The generic get/set live scene messages carry an opaque sub-payload. For the
FM-Master power strip that sub-payload is the socket scene: one byte per
outlet (0xFF on, 0x00 off) followed by the outlet 4 dimmer intensity.
"""

from __future__ import annotations

import struct
from enum import IntEnum

from oase_control.protocol.oase_protocol import OaseProtocol
from oase_control.protocol.packet_types import SocketScene

SUPPORTED_DEVICE_PREFIX = "FM-Master EGC"

SCENE_TYPE_SOCKET = 0x04
SCENE_SUB_TYPE_LIVE = 0x64
SCENE_SET_ITEM_COUNT = 2

VALUE_ON = 0xFF
VALUE_OFF = 0x00
MAX_VALUE = 0xFF


class OutletItem(IntEnum):
    OUTLET1 = 0x00
    OUTLET2 = 0x01
    OUTLET3 = 0x02
    OUTLET4 = 0x03
    OUTLET4_DIMMER = 0x04


ITEM_NAMES: dict[OutletItem, str] = {
    OutletItem.OUTLET1: "outlet1",
    OutletItem.OUTLET2: "outlet2",
    OutletItem.OUTLET3: "outlet3",
    OutletItem.OUTLET4: "outlet4",
    OutletItem.OUTLET4_DIMMER: "outlet4_dimmer",
}
ITEMS_BY_NAME: dict[str, OutletItem] = {name: item for item, name in ITEM_NAMES.items()}


class InvalidCommandError(ValueError):
    """Write command names an unknown item or an out-of-range value; nothing was sent."""


def is_supported_device(long_name: str) -> bool:
    return long_name.startswith(SUPPORTED_DEVICE_PREFIX)


def validate_command(item_id: int | str, value: int | bool) -> tuple[OutletItem, int]:
    """Resolve an item (id or name) and a value into wire form.

    Booleans map to 0xFF/0x00; integers must be within 0-255.

    Raises:
        InvalidCommandError: Unknown item or value out of range

    """
    if isinstance(item_id, str):
        if item_id not in ITEMS_BY_NAME:
            msg = f"Unknown item {item_id!r}"
            raise InvalidCommandError(msg)
        item = ITEMS_BY_NAME[item_id]
    else:
        try:
            item = OutletItem(item_id)
        except ValueError as e:
            msg = f"Unknown item id {item_id!r}"
            raise InvalidCommandError(msg) from e

    if isinstance(value, bool):
        return item, VALUE_ON if value else VALUE_OFF
    if not isinstance(value, int) or not 0 <= value <= MAX_VALUE:
        msg = f"Value {value!r} out of range for {ITEM_NAMES[item]} (0-{MAX_VALUE})"
        raise InvalidCommandError(msg)
    return item, value


def build_socket_scene_get() -> bytes:
    """Request payload for reading the socket scene."""
    return struct.pack("<BI", SCENE_TYPE_SOCKET, 0)


def build_socket_scene_set(item_id: int | str, value: int | bool) -> bytes:
    """Request payload setting one item of the socket scene.

    Raises:
        InvalidCommandError: See validate_command

    """
    item, wire_value = validate_command(item_id, value)
    return struct.pack(
        "<BIIBBBB",
        SCENE_TYPE_SOCKET,
        0,
        0,
        SCENE_SUB_TYPE_LIVE,
        SCENE_SET_ITEM_COUNT,
        item,
        wire_value,
    )


def decode_socket_scene(data: bytes) -> SocketScene:
    return OaseProtocol.parse_socket_scene(data)
