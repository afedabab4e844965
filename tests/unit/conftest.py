"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from oase_control.structs import EngineConfig
from oase_control.transport.types import TransportType
from tests.fixtures.channels import FakeSleeper, FakeStreamChannel, ScriptedChannel


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(
        device_host="192.168.1.50",
        password="secret",
        poll_interval=30.0,
        request_timeout=0.05,
        handshake_wait_timeout=0.1,
    )


@pytest.fixture
def datagram_channel() -> ScriptedChannel:
    return ScriptedChannel(TransportType.UDP)


@pytest.fixture
def stream_channel() -> FakeStreamChannel:
    return FakeStreamChannel()


@pytest.fixture
def sleeper(engine_config: EngineConfig) -> FakeSleeper:
    return FakeSleeper(block_on={engine_config.poll_interval})


@pytest.fixture
def mock_mqtt_client():
    """
    Mock aiomqtt client for testing.

    Returns an AsyncMock configured with the client methods the bridge uses.
    """
    client = AsyncMock()
    client.publish = AsyncMock()
    client.subscribe = AsyncMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


@pytest.fixture
def mock_manager():
    manager = MagicMock()
    manager.is_active = True
    manager.write_outlet = AsyncMock(return_value=True)
    return manager
