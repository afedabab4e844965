import logging
import os

from oase_control import __version__

__all__ = [
    "DEFAULT_TOPIC",
    "FOREIGN_LOG_FORMATTER",
    "OASE_BACKOFF_INITIAL_SECONDS",
    "OASE_BACKOFF_MAX_SECONDS",
    "OASE_BACKOFF_MULTIPLIER",
    "OASE_CONFIG_FILE_PATH",
    "OASE_DEBUG",
    "OASE_DEVICE_HOST",
    "OASE_DEVICE_PASSWORD",
    "OASE_DEVICE_PASSWORD_UNICODE",
    "OASE_DEVICE_PORT",
    "OASE_HANDSHAKE_WAIT_SECONDS",
    "OASE_LISTEN_HOST",
    "OASE_LISTEN_PORT",
    "OASE_LOG_CORRELATION_ENABLED",
    "OASE_LOG_FORMAT",
    "OASE_LOG_HUMAN_OUTPUT",
    "OASE_LOG_JSON_FILE",
    "OASE_LOG_NAME",
    "OASE_METRICS_PORT",
    "OASE_MQTT_CONN_DELAY",
    "OASE_MQTT_ENABLED",
    "OASE_MQTT_HOST",
    "OASE_MQTT_PASS",
    "OASE_MQTT_PORT",
    "OASE_MQTT_USER",
    "OASE_POLL_SECONDS",
    "OASE_READ_ONLY_ITEMS",
    "OASE_RESTART_DELAY",
    "OASE_SSL_CERT",
    "OASE_SSL_KEY",
    "OASE_TOPIC",
    "OASE_VERSION",
    "YES_ANSWER",
    "env_bool",
    "env_float",
    "env_int",
    "env_list",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
OASE_LOG_NAME: str = "oase_control"
OASE_VERSION: str = __version__

# third-party loggers (aiomqtt), adds logger name
FOREIGN_LOG_FORMATTER = logging.Formatter(
    "%(asctime)s.%(msecs)d %(levelname)s <%(name)s> [%(module)s:%(lineno)d] > %(message)s",
    "%m/%d/%y %H:%M:%S",
)


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float | None) -> float | None:
    """Float setting; "none", "off" or "disabled" yield None."""
    raw = os.environ.get(name, "")
    if not raw:
        return default
    if raw.casefold() in ("none", "off", "disabled"):
        return None
    try:
        return float(raw)
    except ValueError:
        return default


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    return raw.casefold() in YES_ANSWER


def env_list(name: str, default: list[str] | None = None) -> list[str]:
    """Comma separated list, blanks dropped."""
    raw = os.environ.get(name, "")
    if not raw:
        return list(default or [])
    return [x.strip() for x in raw.split(",") if x.strip()]


# Device
OASE_DEVICE_HOST: str = os.environ.get("OASE_DEVICE_HOST", "")
OASE_DEVICE_PORT: int = env_int("OASE_DEVICE_PORT", 5959)
OASE_DEVICE_PASSWORD: str = os.environ.get("OASE_DEVICE_PASSWORD", "")
OASE_DEVICE_PASSWORD_UNICODE: bool = env_bool("OASE_DEVICE_PASSWORD_UNICODE", False)
OASE_POLL_SECONDS: float = env_float("OASE_POLL_SECONDS", 30.0) or 30.0

# Local TLS listener the device dials back into
OASE_LISTEN_HOST: str = os.environ.get("OASE_LISTEN_HOST", "0.0.0.0")
OASE_LISTEN_PORT: int = env_int("OASE_LISTEN_PORT", 5999)
OASE_SSL_CERT: str | None = os.environ.get("OASE_SSL_CERT") or None
OASE_SSL_KEY: str | None = os.environ.get("OASE_SSL_KEY") or None
OASE_HANDSHAKE_WAIT_SECONDS: float | None = env_float("OASE_HANDSHAKE_WAIT_SECONDS", 60.0)

# Discovery backoff
OASE_BACKOFF_INITIAL_SECONDS: float = env_float("OASE_BACKOFF_INITIAL_SECONDS", 60.0) or 60.0
OASE_BACKOFF_MULTIPLIER: float = env_float("OASE_BACKOFF_MULTIPLIER", 4.0) or 4.0
OASE_BACKOFF_MAX_SECONDS: float = env_float("OASE_BACKOFF_MAX_SECONDS", 7200.0) or 7200.0
OASE_RESTART_DELAY: int = env_int("OASE_RESTART_DELAY", 30)

OASE_READ_ONLY_ITEMS: list[str] = env_list("OASE_READ_ONLY_ITEMS")

# MQTT host bridge
OASE_MQTT_ENABLED: bool = env_bool("OASE_MQTT_ENABLED", True)
OASE_MQTT_HOST: str = os.environ.get("OASE_MQTT_HOST", "homeassistant.local")
OASE_MQTT_PORT: int = env_int("OASE_MQTT_PORT", 1883)
OASE_MQTT_USER: str | None = os.environ.get("OASE_MQTT_USER")
OASE_MQTT_PASS: str | None = os.environ.get("OASE_MQTT_PASS")
OASE_TOPIC: str = os.environ.get("OASE_TOPIC", "oase_control")
OASE_MQTT_CONN_DELAY: int = env_int("OASE_MQTT_CONN_DELAY", 10)
DEFAULT_TOPIC: str = "oase_control"

OASE_CONFIG_FILE_PATH: str = os.environ.get("OASE_CONFIG_FILE_PATH", "/config/oase-control.yaml")
OASE_METRICS_PORT: int = env_int("OASE_METRICS_PORT", 0)

OASE_DEBUG: bool = env_bool("OASE_DEBUG", False)

# Logging
OASE_LOG_FORMAT: str = os.environ.get("OASE_LOG_FORMAT", "human").casefold()
OASE_LOG_JSON_FILE: str | None = os.environ.get("OASE_LOG_JSON_FILE") or None
OASE_LOG_HUMAN_OUTPUT: str = os.environ.get("OASE_LOG_HUMAN_OUTPUT", "stdout")
OASE_LOG_CORRELATION_ENABLED: bool = env_bool("OASE_LOG_CORRELATION_ENABLED", True)
