from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import ssl
import sys
from pathlib import Path
from typing import Any

import dotenv
import uvloop
import yaml
from pydantic import ValidationError

from oase_control.const import (
    FOREIGN_LOG_FORMATTER,
    OASE_CONFIG_FILE_PATH,
    OASE_DEBUG,
    OASE_METRICS_PORT,
    OASE_RESTART_DELAY,
    OASE_VERSION,
    env_bool,
    env_int,
)
from oase_control.correlation import correlation_context, ensure_correlation_id
from oase_control.logging_abstraction import get_logger, set_global_level
from oase_control.metrics import start_metrics_server
from oase_control.mqtt.client import MQTTBridge
from oase_control.protocol.exceptions import OaseProtocolError
from oase_control.structs import EngineConfig, MQTTConfig
from oase_control.transport.certificates import CertificateProvider
from oase_control.transport.connection_manager import ConnectionManager
from oase_control.transport.datagram import DatagramChannel
from oase_control.transport.exceptions import AuthenticationError
from oase_control.transport.stream_server import StreamChannel

logger = get_logger(__name__)

# aiomqtt logs through the standard library; keep it quiet and tagged
mqtt_handler = logging.StreamHandler(sys.stdout)
mqtt_handler.setFormatter(FOREIGN_LOG_FORMATTER)
mqtt_logger = logging.getLogger("mqtt")
mqtt_logger.setLevel(logging.ERROR)
mqtt_logger.propagate = False
mqtt_logger.addHandler(mqtt_handler)

EXIT_OK = 0
EXIT_AUTH_FAILED = 1
EXIT_BAD_CONFIG = 2


def load_config(config_file: Path) -> dict[str, Any]:
    """Read the optional YAML config file.

    Layout::

        device:
          device_host: 192.168.1.50
          password: secret
          poll_interval: 30
        mqtt:
          host: broker.local

    Returns:
        Parsed mapping; empty when the file does not exist

    Raises:
        yaml.YAMLError: File exists but is not valid YAML

    """
    if not config_file.exists():
        logger.debug("No config file at %s, using environment only", config_file)
        return {}

    logger.debug("Parsing config file: %s", config_file)
    try:
        with config_file.open() as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError:
        logger.exception("Failed to parse config file: %s", config_file)
        raise

    if not isinstance(config_data, dict):
        logger.warning("Config file %s has no mapping at top level, ignoring", config_file)
        return {}
    return config_data


def build_configs(config_data: dict[str, Any]) -> tuple[EngineConfig, MQTTConfig]:
    """Merge environment and YAML sections. YAML wins.

    Raises:
        ValidationError: Missing device host, poll interval below 10s, ...

    """
    device_section = config_data.get("device") or {}
    mqtt_section = config_data.get("mqtt") or {}
    return EngineConfig.from_env(**device_section), MQTTConfig.from_env(**mqtt_section)


class OaseController:
    """Runs engine sessions back to back and owns the MQTT bridge.

    A failed session is replaced by a fresh ConnectionManager after
    ``restart_delay`` seconds. A rejected password stops the controller.
    """

    lp: str = "OaseController:"

    def __init__(
        self,
        config: EngineConfig,
        mqtt_config: MQTTConfig | None = None,
        restart_delay: float = OASE_RESTART_DELAY,
    ) -> None:
        self.config = config
        self.restart_delay = restart_delay
        self.manager: ConnectionManager | None = None
        self.mqtt: MQTTBridge | None = None
        if mqtt_config is not None and mqtt_config.enabled:
            self.mqtt = MQTTBridge(
                topic=mqtt_config.topic,
                host=mqtt_config.host,
                port=mqtt_config.port,
                username=mqtt_config.username,
                password=mqtt_config.password,
                read_only_items=config.read_only_items,
                conn_delay=mqtt_config.conn_delay,
            )
        self.certificates = CertificateProvider(config.ssl_cert, config.ssl_key)
        self._ssl_context: ssl.SSLContext | None = None
        self._stop_event = asyncio.Event()

    def build_manager(self) -> ConnectionManager:
        config = self.config
        if self._ssl_context is None:
            self._ssl_context = self.certificates.create_ssl_context()
        datagram = DatagramChannel(config.device_host, config.device_port, config.request_timeout)
        stream = StreamChannel(
            self._ssl_context,
            host=config.listen_host,
            port=config.listen_port,
            request_timeout=config.request_timeout,
            ssl_handshake_timeout=config.ssl_handshake_timeout,
            idle_timeout=config.stream_idle_timeout,
        )
        return ConnectionManager(config, datagram, stream)

    async def start(self) -> int:
        """Run until stop() or an authentication failure. Returns the process exit code."""
        lp = f"{self.lp}start:"
        _ = ensure_correlation_id()
        if self.mqtt is not None:
            self.mqtt.start_task = asyncio.create_task(self.mqtt.start(), name="oase_mqtt_start")

        exit_code = EXIT_OK
        try:
            while not self._stop_event.is_set():
                self.manager = manager = self.build_manager()
                if self.mqtt is not None:
                    self.mqtt.attach(manager)
                session = asyncio.create_task(manager.run(), name="oase_session")
                try:
                    await session
                except asyncio.CancelledError:
                    # manager.stop() cancels the session while it waits for the device
                    current = asyncio.current_task()
                    if not self._stop_event.is_set() or (current is not None and current.cancelling()):
                        raise
                    break
                except AuthenticationError:
                    logger.error("%s device rejected the password, check OASE_DEVICE_PASSWORD", lp)
                    exit_code = EXIT_AUTH_FAILED
                    break
                except OaseProtocolError as e:
                    if self._stop_event.is_set():
                        break
                    logger.error(
                        "%s session ended: %s. Restarting in %s seconds",
                        lp,
                        e,
                        self.restart_delay,
                    )
                    await self._wait_for_stop(self.restart_delay)
                else:
                    break
        finally:
            if self.mqtt is not None:
                await self.mqtt.stop()
        return exit_code

    async def _wait_for_stop(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except TimeoutError:
            return

    async def stop(self) -> None:
        logger.info("%s Shutting down...", self.lp)
        self._stop_event.set()
        if self.manager is not None:
            await self.manager.stop()


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="OASE FM-Master control engine")
    parser.add_argument(
        "-D",
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    _ = parser.add_argument(
        "--config",
        help="Path to the YAML config file",
        default=None,
        type=Path,
    )
    return parser.parse_args(argv)


def load_env_file(env_file: Path) -> None:
    env_path = env_file.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return
    if dotenv.load_dotenv(env_path, override=True):
        logger.info("Environment variables loaded", extra={"source": str(env_path)})
    else:
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})


async def _run(controller: OaseController) -> int:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, lambda s=signum: _on_signal(controller, s))
    return await controller.start()


def _on_signal(controller: OaseController, signum: int) -> None:
    logger.info("Intercepted signal: %s (%s)", signal.Signals(signum).name, signum)
    _ = asyncio.get_running_loop().create_task(controller.stop())


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the OASE control engine."""
    with correlation_context():
        logger.info("Starting OASE control", extra={"version": OASE_VERSION})
        args = parse_cli(argv)

        if args.env:
            load_env_file(args.env)
        if args.debug or OASE_DEBUG or env_bool("OASE_DEBUG", False):
            set_global_level(logging.DEBUG)
            logger.info("Debug logging enabled")

        config_file = args.config or Path(os.environ.get("OASE_CONFIG_FILE_PATH", OASE_CONFIG_FILE_PATH))
        try:
            engine_config, mqtt_config = build_configs(load_config(config_file.expanduser()))
        except (ValidationError, yaml.YAMLError) as e:
            logger.error("Invalid configuration: %s", e)
            sys.exit(EXIT_BAD_CONFIG)

        metrics_port = env_int("OASE_METRICS_PORT", OASE_METRICS_PORT)
        if metrics_port:
            start_metrics_server(metrics_port)
            logger.info("Metrics exporter listening", extra={"port": metrics_port})

        controller = OaseController(engine_config, mqtt_config)
        try:
            exit_code = uvloop.run(_run(controller))
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
            exit_code = EXIT_OK
        logger.info("OASE control shutdown complete")
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
