"""Core data structures for the OASE control engine."""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from oase_control.const import (
    DEFAULT_TOPIC,
    OASE_BACKOFF_INITIAL_SECONDS,
    OASE_BACKOFF_MAX_SECONDS,
    OASE_BACKOFF_MULTIPLIER,
    OASE_DEVICE_HOST,
    OASE_DEVICE_PASSWORD,
    OASE_DEVICE_PASSWORD_UNICODE,
    OASE_DEVICE_PORT,
    OASE_HANDSHAKE_WAIT_SECONDS,
    OASE_LISTEN_HOST,
    OASE_LISTEN_PORT,
    OASE_MQTT_CONN_DELAY,
    OASE_MQTT_ENABLED,
    OASE_MQTT_HOST,
    OASE_MQTT_PASS,
    OASE_MQTT_PORT,
    OASE_MQTT_USER,
    OASE_POLL_SECONDS,
    OASE_READ_ONLY_ITEMS,
    OASE_SSL_CERT,
    OASE_SSL_KEY,
    OASE_TOPIC,
    env_bool,
    env_float,
    env_int,
    env_list,
)

MIN_POLL_SECONDS = 10.0


class EngineConfig(BaseModel):
    """Engine settings consumed from the host.

    Defaults mirror the OASE_* environment variables; a YAML ``device:`` section
    may override any field (see ``oase_control.main.load_config``).
    """

    device_host: str
    device_port: int = 5959
    listen_host: str = "0.0.0.0"
    listen_port: int = 5999
    password: str = ""
    password_unicode_escaped: bool = False
    poll_interval: float = Field(default=30.0, ge=MIN_POLL_SECONDS)
    request_timeout: float = Field(default=5.0, gt=0)
    backoff_initial: float = Field(default=60.0, gt=0)
    backoff_multiplier: float = Field(default=4.0, ge=1)
    backoff_max: float = Field(default=7200.0, gt=0)
    poll_retries: int = Field(default=3, ge=1)
    keepalive_threshold: float = 60.0
    # None waits for the device forever
    handshake_wait_timeout: float | None = 60.0
    ssl_handshake_timeout: float = 10.0
    stream_idle_timeout: float = 7200.0
    ssl_cert: str | None = None
    ssl_key: str | None = None
    read_only_items: list[str] = Field(default_factory=list)

    @field_validator("device_host")
    @classmethod
    def _host_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            msg = "device host must not be empty"
            raise ValueError(msg)
        return value

    @classmethod
    def from_env(cls, **overrides: Any) -> EngineConfig:
        """Build a config from the current OASE_* environment, applying ``overrides`` last.

        Reads os.environ at call time so a ``.env`` file loaded after import still applies.
        """
        values: dict[str, Any] = {
            "device_host": os.environ.get("OASE_DEVICE_HOST", OASE_DEVICE_HOST),
            "device_port": env_int("OASE_DEVICE_PORT", OASE_DEVICE_PORT),
            "listen_host": os.environ.get("OASE_LISTEN_HOST", OASE_LISTEN_HOST),
            "listen_port": env_int("OASE_LISTEN_PORT", OASE_LISTEN_PORT),
            "password": os.environ.get("OASE_DEVICE_PASSWORD", OASE_DEVICE_PASSWORD),
            "password_unicode_escaped": env_bool("OASE_DEVICE_PASSWORD_UNICODE", OASE_DEVICE_PASSWORD_UNICODE),
            "poll_interval": env_float("OASE_POLL_SECONDS", OASE_POLL_SECONDS) or OASE_POLL_SECONDS,
            "backoff_initial": env_float("OASE_BACKOFF_INITIAL_SECONDS", OASE_BACKOFF_INITIAL_SECONDS)
            or OASE_BACKOFF_INITIAL_SECONDS,
            "backoff_multiplier": env_float("OASE_BACKOFF_MULTIPLIER", OASE_BACKOFF_MULTIPLIER)
            or OASE_BACKOFF_MULTIPLIER,
            "backoff_max": env_float("OASE_BACKOFF_MAX_SECONDS", OASE_BACKOFF_MAX_SECONDS) or OASE_BACKOFF_MAX_SECONDS,
            "handshake_wait_timeout": env_float("OASE_HANDSHAKE_WAIT_SECONDS", OASE_HANDSHAKE_WAIT_SECONDS),
            "ssl_cert": os.environ.get("OASE_SSL_CERT") or OASE_SSL_CERT,
            "ssl_key": os.environ.get("OASE_SSL_KEY") or OASE_SSL_KEY,
            "read_only_items": env_list("OASE_READ_ONLY_ITEMS", OASE_READ_ONLY_ITEMS),
        }
        values.update(overrides)
        return cls(**values)


class MQTTConfig(BaseModel):
    """Broker settings for the host bridge."""

    enabled: bool = True
    host: str = "homeassistant.local"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    topic: str = "oase_control"
    conn_delay: int = 10

    @classmethod
    def from_env(cls, **overrides: Any) -> MQTTConfig:
        values: dict[str, Any] = {
            "enabled": env_bool("OASE_MQTT_ENABLED", OASE_MQTT_ENABLED),
            "host": os.environ.get("OASE_MQTT_HOST", OASE_MQTT_HOST),
            "port": env_int("OASE_MQTT_PORT", OASE_MQTT_PORT),
            "username": os.environ.get("OASE_MQTT_USER", OASE_MQTT_USER),
            "password": os.environ.get("OASE_MQTT_PASS", OASE_MQTT_PASS),
            "topic": os.environ.get("OASE_TOPIC") or OASE_TOPIC or DEFAULT_TOPIC,
            "conn_delay": env_int("OASE_MQTT_CONN_DELAY", OASE_MQTT_CONN_DELAY),
        }
        values.update(overrides)
        return cls(**values)


class DeviceIdentity(BaseModel):
    """Identity reported by the device in its discovery reply."""

    name: str
    serial: str
    long_name: str
    host: str | None = None


class DeviceState(BaseModel):
    """Typed snapshot of everything the engine publishes to the host."""

    connected: bool = False
    identity: DeviceIdentity | None = None
    outlets: list[bool] = Field(default_factory=lambda: [False, False, False, False])
    dimmer: int = Field(default=0, ge=0, le=255)

    def points(self) -> dict[str, str | bool | int]:
        """Flatten the state into the named points the host adapter publishes."""
        points: dict[str, str | bool | int] = {"connected": self.connected}
        if self.identity is not None:
            points["name"] = self.identity.name
            points["serial-number"] = self.identity.serial
            points["device"] = self.identity.long_name
        for index, state in enumerate(self.outlets, start=1):
            points[f"outlet{index}"] = state
        points["outlet4_dimmer"] = self.dimmer
        return points


class EngineEvent(StrEnum):
    """Lifecycle events emitted to listeners."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    AUTHENTICATION_FAILED = "authentication_failed"
    RETRY_SCHEDULED = "retry_scheduled"
    STATE_CHANGED = "state_changed"


EngineListener = Callable[[EngineEvent, DeviceState], Awaitable[None] | None]
