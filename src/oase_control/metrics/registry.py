"""Prometheus metrics registry for the OASE engine."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

# Request metrics
oase_request_total: Final = Counter(  # type: ignore[assignment]
    "oase_request_total",
    "Total requests sent to the device",
    ["channel", "packet_type", "outcome"],
)

oase_request_latency_seconds: Final = Histogram(  # type: ignore[assignment]
    "oase_request_latency_seconds",
    "Request round-trip latency in seconds",
    ["channel", "packet_type"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

oase_decode_errors_total: Final = Counter(  # type: ignore[assignment]
    "oase_decode_errors_total",
    "Total decode errors",
    ["reason"],
)

# Lifecycle metrics
oase_connection_state: Final = Gauge(  # type: ignore[assignment]
    "oase_connection_state",
    "Current connection state (1 for the active state)",
    ["state"],
)

oase_discovery_retries_total: Final = Counter(  # type: ignore[assignment]
    "oase_discovery_retries_total",
    "Total discovery/handoff retries scheduled",
    ["reason"],
)

oase_poll_total: Final = Counter(  # type: ignore[assignment]
    "oase_poll_total",
    "Total scene polls",
    ["outcome"],
)

oase_authentication_total: Final = Counter(  # type: ignore[assignment]
    "oase_authentication_total",
    "Total password checks",
    ["outcome"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_request(channel: str, packet_type: str, outcome: str) -> None:
    oase_request_total.labels(channel=channel, packet_type=packet_type, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_request_latency(channel: str, packet_type: str, latency_seconds: float) -> None:
    oase_request_latency_seconds.labels(channel=channel, packet_type=packet_type).observe(latency_seconds)  # type: ignore[no-untyped-call]


def record_decode_error(reason: str) -> None:
    oase_decode_errors_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_connection_state(state: str, all_states: list[str]) -> None:
    """Set the gauge to 1 for ``state`` and 0 for every other state."""
    for name in all_states:
        oase_connection_state.labels(state=name).set(1 if name == state else 0)  # type: ignore[no-untyped-call]


def record_discovery_retry(reason: str) -> None:
    oase_discovery_retries_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_poll(outcome: str) -> None:
    oase_poll_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_authentication(outcome: str) -> None:
    oase_authentication_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]
