"""MQTT bridge between the engine and the host.

State points are published retained under ``<topic>/<point>``; write
commands arrive on ``<topic>/set/<item>``. ``<topic>/set/<item>_readOnly``
toggles per-item write protection.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Iterable
from typing import Any

import aiomqtt

from oase_control.const import (
    DEFAULT_TOPIC,
    OASE_MQTT_CONN_DELAY,
    OASE_MQTT_HOST,
    OASE_MQTT_PASS,
    OASE_MQTT_PORT,
    OASE_MQTT_USER,
    OASE_TOPIC,
    YES_ANSWER,
)
from oase_control.devices.fm_master import ITEMS_BY_NAME, InvalidCommandError, OutletItem
from oase_control.logging_abstraction import get_logger
from oase_control.protocol.exceptions import OaseProtocolError
from oase_control.structs import DeviceState, EngineEvent
from oase_control.transport.connection_manager import ConnectionManager

logger = get_logger(__name__)

DEVICE_LWT_MSG = b"offline"
READ_ONLY_SUFFIX = "_readOnly"
_TRUE_PAYLOADS = ("true", "on", "1")
_FALSE_PAYLOADS = ("false", "off", "0")


def parse_command_payload(payload: bytes | str, numeric: bool = False) -> bool | int:
    """Map a command payload to a wire value.

    ``true``/``on``/``1`` and ``false``/``off``/``0`` are switch commands; any
    other integer is a dimmer value (range checked by the engine). With
    ``numeric`` (the dimmer item) integers are taken literally, so ``1`` is
    intensity 1 and only the words ``true``/``on``/``false``/``off`` switch.

    Raises:
        InvalidCommandError: Payload is neither a switch word nor an integer

    """
    text = payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else payload
    normalized = text.strip().casefold()
    if numeric and normalized.lstrip("+-").isdigit():
        return int(normalized)
    if normalized in _TRUE_PAYLOADS:
        return True
    if normalized in _FALSE_PAYLOADS:
        return False
    try:
        return int(normalized)
    except ValueError as e:
        msg = f"Unsupported payload {text!r}"
        raise InvalidCommandError(msg) from e


def _encode_point(value: str | bool | int) -> bytes:
    if isinstance(value, bool):
        return b"true" if value else b"false"
    return str(value).encode()


class MQTTBridge:
    lp: str = "mqtt:"

    def __init__(
        self,
        topic: str | None = None,
        host: str = OASE_MQTT_HOST,
        port: int = OASE_MQTT_PORT,
        username: str | None = OASE_MQTT_USER,
        password: str | None = OASE_MQTT_PASS,
        read_only_items: Iterable[str] = (),
        conn_delay: int = OASE_MQTT_CONN_DELAY,
        client_factory: Callable[..., Any] = aiomqtt.Client,
    ) -> None:
        if topic is None:
            topic = OASE_TOPIC or DEFAULT_TOPIC
        self.topic = topic
        self.broker_host = host
        self.broker_port = port
        self.broker_username = username
        self.broker_password = password
        self.broker_client_id = f"oase_control_{uuid.uuid4().hex[:8]}"
        self.conn_delay = conn_delay
        self.client_factory = client_factory
        self.client: Any = None
        self.manager: ConnectionManager | None = None
        self.start_task: asyncio.Task[None] | None = None
        self._connected = False
        protected = set(read_only_items)
        self.read_only: dict[str, bool] = {name: name in protected for name in ITEMS_BY_NAME}

    @property
    def is_connected(self) -> bool:
        return self._connected

    def attach(self, manager: ConnectionManager) -> None:
        """Follow a (new) engine session."""
        if self.manager is not None:
            self.manager.remove_listener(self.on_engine_event)
        self.manager = manager
        manager.add_listener(self.on_engine_event)

    # Broker connection

    async def start(self) -> None:
        lp = f"{self.lp}start:"
        while True:
            if await self.connect():
                try:
                    await self._start_receiver()
                except aiomqtt.MqttError as msg_err:
                    logger.warning("%s MQTT error: %s", lp, msg_err)
                    self._connected = False
                    continue
                return
            delay = self.conn_delay if self.conn_delay > 0 else 5
            logger.info(
                "%s connecting to MQTT broker failed, sleeping for %s seconds before re-trying...",
                lp,
                delay,
            )
            await asyncio.sleep(delay)

    async def connect(self) -> bool:
        lp = f"{self.lp}connect:"
        self._connected = False
        lwt = aiomqtt.Will(topic=f"{self.topic}/connected", payload=DEVICE_LWT_MSG, retain=True)
        self.client = self.client_factory(
            hostname=self.broker_host,
            port=self.broker_port,
            username=self.broker_username,
            password=self.broker_password,
            identifier=self.broker_client_id,
            will=lwt,
        )
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError:
            logger.exception("%s Connection failed [MqttError]", lp)
            return False

        self._connected = True
        logger.info("%s Connected to MQTT broker: %s port: %s", lp, self.broker_host, self.broker_port)
        await self.publish_read_only()
        if self.manager is not None:
            await self.publish_state(self.manager.device_state)
        return True

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        if self._connected:
            _ = await self.publish(f"{self.topic}/connected", DEVICE_LWT_MSG, retain=True)
        try:
            if self.client is not None:
                await self.client.__aexit__(None, None, None)
        except aiomqtt.MqttError as ce:
            logger.warning("%s MQTT disconnect failed: %s", lp, ce)
        else:
            logger.info("%s Disconnected from MQTT broker", lp)
        finally:
            self._connected = False
            if self.start_task and not self.start_task.done():
                _ = self.start_task.cancel()

    async def publish(self, topic: str, msg_data: bytes, retain: bool = False) -> bool:
        lp = f"{self.lp}publish:"
        if not self._connected or self.client is None:
            return False
        try:
            _ = await self.client.publish(topic, msg_data, qos=0, retain=retain)
        except aiomqtt.MqttError as mqtt_err:
            logger.warning("%s [MqttError] -> %s", lp, mqtt_err)
            self._connected = False
            return False
        return True

    # Engine -> host

    async def on_engine_event(self, event: EngineEvent, state: DeviceState) -> None:
        if event in (EngineEvent.CONNECTED, EngineEvent.STATE_CHANGED, EngineEvent.DISCONNECTED):
            await self.publish_state(state)
        elif event is EngineEvent.AUTHENTICATION_FAILED:
            _ = await self.publish(f"{self.topic}/connected", b"false", retain=True)
        else:
            logger.debug("%s engine event %s", self.lp, event)

    async def publish_state(self, state: DeviceState) -> None:
        for point, value in state.points().items():
            _ = await self.publish(f"{self.topic}/{point}", _encode_point(value), retain=True)

    async def publish_read_only(self) -> None:
        for item, protected in self.read_only.items():
            _ = await self.publish(f"{self.topic}/{item}{READ_ONLY_SUFFIX}", _encode_point(protected), retain=True)

    # Host -> engine

    async def _start_receiver(self) -> None:
        lp = f"{self.lp}rcv:"
        assert self.client is not None, "client must be initialized"
        await self.client.subscribe(f"{self.topic}/set/#", qos=0)
        logger.debug("%s Subscribed to %s/set/#. Waiting for MQTT messages...", lp, self.topic)
        async for message in self.client.messages:
            payload = message.payload
            if not payload:
                logger.debug("%s Received empty payload for topic: %s , skipping...", lp, message.topic)
                continue
            if not isinstance(payload, bytes | str):
                payload = str(payload)
            await self.handle_message(str(message.topic), payload)

    async def handle_message(self, topic: str, payload: bytes | str) -> None:
        prefix = f"{self.topic}/set/"
        if not topic.startswith(prefix):
            logger.debug("%s ignoring topic %s", self.lp, topic)
            return
        item = topic[len(prefix) :]
        if item.endswith(READ_ONLY_SUFFIX):
            await self.set_read_only(item[: -len(READ_ONLY_SUFFIX)], payload)
            return
        _ = await self.handle_command(item, payload)

    async def set_read_only(self, item: str, payload: bytes | str) -> None:
        if item not in self.read_only:
            logger.warning("%s read only switch for unknown item %s", self.lp, item)
            return
        text = payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else payload
        self.read_only[item] = text.strip().casefold() in YES_ANSWER
        logger.info("%s %s read only: %s", self.lp, item, self.read_only[item])
        _ = await self.publish(
            f"{self.topic}/{item}{READ_ONLY_SUFFIX}",
            _encode_point(self.read_only[item]),
            retain=True,
        )

    async def handle_command(self, item: str, payload: bytes | str) -> bool:
        """Forward a write command to the engine unless the item is protected."""
        lp = f"{self.lp}command:"
        if item not in ITEMS_BY_NAME:
            logger.warning("%s Unknown item: %s, skipping...", lp, item)
            return False
        if self.read_only[item]:
            logger.info("%s ignore state change because %s is set to read only", lp, item)
            return False
        try:
            value = parse_command_payload(payload, numeric=ITEMS_BY_NAME[item] is OutletItem.OUTLET4_DIMMER)
        except InvalidCommandError as e:
            logger.warning("%s %s", lp, e)
            return False

        manager = self.manager
        if manager is None or not manager.is_active:
            logger.warning("%s not connected to device, %s command discarded", lp, item)
            return False
        try:
            return await manager.write_outlet(item, value)
        except InvalidCommandError as e:
            logger.warning("%s given value is not compatible, command discarded: %s", lp, e)
        except OaseProtocolError as e:
            logger.error("%s command for %s failed: %s", lp, item, e)
        return False
