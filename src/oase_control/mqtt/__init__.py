"""MQTT host adapter: publishes device state and forwards write commands."""

from oase_control.mqtt.client import MQTTBridge, parse_command_payload

__all__ = ["MQTTBridge", "parse_command_payload"]
