"""Prometheus metrics for the OASE engine."""

from oase_control.metrics.registry import (
    record_authentication,
    record_connection_state,
    record_decode_error,
    record_discovery_retry,
    record_poll,
    record_request,
    record_request_latency,
    start_metrics_server,
)

__all__ = [
    "record_authentication",
    "record_connection_state",
    "record_decode_error",
    "record_discovery_retry",
    "record_poll",
    "record_request",
    "record_request_latency",
    "start_metrics_server",
]
