"""Unit tests for the MQTT bridge.

Tests for state publishing, command routing to the engine, read-only
protection and the broker reconnect loop.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, call

import aiomqtt
import pytest

from oase_control.devices.fm_master import InvalidCommandError, OutletItem, validate_command
from oase_control.mqtt.client import MQTTBridge, parse_command_payload
from oase_control.structs import DeviceIdentity, DeviceState, EngineEvent
from oase_control.transport.exceptions import RequestTimeoutError

TOPIC = "pond"


class FakeMessages:
    """Async iterable over canned broker messages; restartable per subscription."""

    def __init__(self, *messages: tuple[str, bytes]) -> None:
        self.messages = [SimpleNamespace(topic=topic, payload=payload) for topic, payload in messages]

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message


@pytest.fixture
def bridge(mock_mqtt_client) -> MQTTBridge:
    return MQTTBridge(topic=TOPIC, client_factory=MagicMock(return_value=mock_mqtt_client))


@pytest.fixture
def state() -> DeviceState:
    return DeviceState(
        connected=True,
        identity=DeviceIdentity(name="Pond Strip", serial="F1A2B3C4D5E6", long_name="FM-Master EGC-v2"),
        outlets=[True, False, False, True],
        dimmer=90,
    )


def published(client) -> dict[str, bytes]:
    return {c.args[0]: c.args[1] for c in client.publish.call_args_list}


class TestParseCommandPayload:
    @pytest.mark.parametrize("payload", [b"true", b"ON", b"1", "on", b" True "])
    def test_true_words(self, payload):
        assert parse_command_payload(payload) is True

    @pytest.mark.parametrize("payload", [b"false", b"off", b"0", "OFF"])
    def test_false_words(self, payload):
        assert parse_command_payload(payload) is False

    def test_integer_is_dimmer_value(self):
        assert parse_command_payload(b"128") == 128

    @pytest.mark.parametrize(("payload", "expected"), [(b"1", 1), (b"0", 0), (b" 255 ", 255)])
    def test_numeric_items_take_integers_literally(self, payload, expected):
        value = parse_command_payload(payload, numeric=True)
        assert value == expected
        assert not isinstance(value, bool)

    def test_numeric_items_still_accept_switch_words(self):
        assert parse_command_payload(b"on", numeric=True) is True
        assert parse_command_payload(b"OFF", numeric=True) is False

    def test_garbage_rejected(self):
        with pytest.raises(InvalidCommandError):
            parse_command_payload(b"bright")


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_publishes_read_only_flags_and_state(self, bridge, mock_mqtt_client, mock_manager, state):
        mock_manager.device_state = state
        bridge.attach(mock_manager)

        assert await bridge.connect() is True

        assert bridge.is_connected
        points = published(mock_mqtt_client)
        assert points[f"{TOPIC}/outlet1_readOnly"] == b"false"
        assert points[f"{TOPIC}/connected"] == b"true"
        assert points[f"{TOPIC}/serial-number"] == b"F1A2B3C4D5E6"
        assert points[f"{TOPIC}/outlet4"] == b"true"
        assert points[f"{TOPIC}/outlet4_dimmer"] == b"90"
        assert all(c.kwargs["retain"] for c in mock_mqtt_client.publish.call_args_list)

    @pytest.mark.asyncio
    async def test_connect_registers_last_will(self, mock_mqtt_client):
        factory = MagicMock(return_value=mock_mqtt_client)
        bridge = MQTTBridge(topic=TOPIC, host="broker.local", port=1884, client_factory=factory)

        await bridge.connect()

        kwargs = factory.call_args.kwargs
        assert kwargs["hostname"] == "broker.local"
        assert kwargs["port"] == 1884
        assert kwargs["will"].topic == f"{TOPIC}/connected"
        assert kwargs["will"].payload == b"offline"
        assert kwargs["will"].retain is True

    @pytest.mark.asyncio
    async def test_connect_failure(self, bridge, mock_mqtt_client):
        mock_mqtt_client.__aenter__.side_effect = aiomqtt.MqttError("connection refused")

        assert await bridge.connect() is False
        assert not bridge.is_connected
        assert await bridge.publish(f"{TOPIC}/connected", b"true") is False

    @pytest.mark.asyncio
    async def test_start_reconnects_after_receiver_error(self, bridge, mock_mqtt_client):
        mock_mqtt_client.subscribe.side_effect = [aiomqtt.MqttError("connection lost"), None]
        mock_mqtt_client.messages = FakeMessages()

        await bridge.start()

        assert mock_mqtt_client.__aenter__.await_count == 2
        mock_mqtt_client.subscribe.assert_awaited_with(f"{TOPIC}/set/#", qos=0)

    @pytest.mark.asyncio
    async def test_stop_publishes_offline(self, bridge, mock_mqtt_client):
        await bridge.connect()

        await bridge.stop()

        mock_mqtt_client.publish.assert_awaited_with(f"{TOPIC}/connected", b"offline", qos=0, retain=True)
        mock_mqtt_client.__aexit__.assert_awaited_once()
        assert not bridge.is_connected

    @pytest.mark.asyncio
    async def test_publish_error_marks_disconnected(self, bridge, mock_mqtt_client):
        await bridge.connect()
        mock_mqtt_client.publish.side_effect = aiomqtt.MqttError("broken pipe")

        assert await bridge.publish(f"{TOPIC}/outlet1", b"true") is False
        assert not bridge.is_connected


class TestEngineEvents:
    @pytest.mark.asyncio
    async def test_attach_moves_listener(self, bridge, mock_manager):
        old_manager = MagicMock()
        bridge.attach(old_manager)
        bridge.attach(mock_manager)

        old_manager.remove_listener.assert_called_once_with(bridge.on_engine_event)
        mock_manager.add_listener.assert_called_once_with(bridge.on_engine_event)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event", [EngineEvent.CONNECTED, EngineEvent.STATE_CHANGED, EngineEvent.DISCONNECTED])
    async def test_state_events_publish_points(self, bridge, mock_mqtt_client, state, event):
        await bridge.connect()
        mock_mqtt_client.publish.reset_mock()

        await bridge.on_engine_event(event, state)

        assert set(published(mock_mqtt_client)) == {f"{TOPIC}/{point}" for point in state.points()}

    @pytest.mark.asyncio
    async def test_authentication_failure_publishes_disconnected(self, bridge, mock_mqtt_client, state):
        await bridge.connect()
        mock_mqtt_client.publish.reset_mock()

        await bridge.on_engine_event(EngineEvent.AUTHENTICATION_FAILED, state)

        mock_mqtt_client.publish.assert_awaited_once_with(f"{TOPIC}/connected", b"false", qos=0, retain=True)


class TestCommands:
    @pytest.mark.asyncio
    async def test_command_forwarded(self, bridge, mock_manager):
        bridge.attach(mock_manager)

        await bridge.handle_message(f"{TOPIC}/set/outlet2", b"on")

        mock_manager.write_outlet.assert_awaited_once_with("outlet2", True)

    @pytest.mark.asyncio
    async def test_dimmer_value_forwarded(self, bridge, mock_manager):
        bridge.attach(mock_manager)

        assert await bridge.handle_command("outlet4_dimmer", b"150") is True

        mock_manager.write_outlet.assert_awaited_once_with("outlet4_dimmer", 150)

    @pytest.mark.asyncio
    async def test_dimmer_value_one_is_not_full_brightness(self, bridge, mock_manager):
        bridge.attach(mock_manager)

        await bridge.handle_message(f"{TOPIC}/set/outlet4_dimmer", b"1")

        assert validate_command(*mock_manager.write_outlet.await_args.args) == (OutletItem.OUTLET4_DIMMER, 1)

    @pytest.mark.asyncio
    async def test_outlet_payload_one_switches_on(self, bridge, mock_manager):
        bridge.attach(mock_manager)

        await bridge.handle_message(f"{TOPIC}/set/outlet1", b"1")

        assert validate_command(*mock_manager.write_outlet.await_args.args) == (OutletItem.OUTLET1, 0xFF)

    @pytest.mark.asyncio
    async def test_read_only_item_not_written(self, mock_mqtt_client, mock_manager):
        bridge = MQTTBridge(
            topic=TOPIC,
            read_only_items=["outlet1"],
            client_factory=MagicMock(return_value=mock_mqtt_client),
        )
        bridge.attach(mock_manager)

        assert await bridge.handle_command("outlet1", b"on") is False
        assert await bridge.handle_command("outlet2", b"on") is True
        mock_manager.write_outlet.assert_awaited_once_with("outlet2", True)

    @pytest.mark.asyncio
    async def test_read_only_toggle(self, bridge, mock_mqtt_client, mock_manager):
        bridge.attach(mock_manager)
        await bridge.connect()
        mock_mqtt_client.publish.reset_mock()

        await bridge.handle_message(f"{TOPIC}/set/outlet3_readOnly", b"true")

        assert bridge.read_only["outlet3"] is True
        mock_mqtt_client.publish.assert_awaited_once_with(f"{TOPIC}/outlet3_readOnly", b"true", qos=0, retain=True)
        assert await bridge.handle_command("outlet3", b"off") is False

        await bridge.handle_message(f"{TOPIC}/set/outlet3_readOnly", b"false")
        assert bridge.read_only["outlet3"] is False

    @pytest.mark.asyncio
    async def test_inactive_session_discards_command(self, bridge, mock_manager):
        mock_manager.is_active = False
        bridge.attach(mock_manager)

        assert await bridge.handle_command("outlet1", b"on") is False
        mock_manager.write_outlet.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_item_and_bad_payload(self, bridge, mock_manager):
        bridge.attach(mock_manager)

        assert await bridge.handle_command("outlet7", b"on") is False
        assert await bridge.handle_command("outlet1", b"maybe") is False
        mock_manager.write_outlet.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [InvalidCommandError("Value 999 out of range"), RequestTimeoutError("tls", 5.0)],
    )
    async def test_engine_errors_are_contained(self, bridge, mock_manager, error):
        mock_manager.write_outlet = AsyncMock(side_effect=error)
        bridge.attach(mock_manager)

        assert await bridge.handle_command("outlet4_dimmer", b"999") is False

    @pytest.mark.asyncio
    async def test_receiver_routes_messages(self, bridge, mock_mqtt_client, mock_manager):
        bridge.attach(mock_manager)
        mock_mqtt_client.messages = FakeMessages(
            (f"{TOPIC}/set/outlet1", b"1"),
            (f"{TOPIC}/set/outlet2", b""),
            ("elsewhere/set/outlet3", b"on"),
            (f"{TOPIC}/set/outlet4", b"off"),
        )
        await bridge.connect()

        await bridge._start_receiver()

        assert mock_manager.write_outlet.await_args_list == [call("outlet1", True), call("outlet4", False)]
