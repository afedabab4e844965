"""Unit tests for the logging abstraction layer."""

from __future__ import annotations

import json
import logging

from oase_control.correlation import correlation_context
from oase_control.logging_abstraction import (
    HumanReadableFormatter,
    JSONFormatter,
    get_logger,
    set_global_level,
)


def make_record(msg: str = "State %s -> %s", args=("idle", "discovering"), extra_data=None) -> logging.LogRecord:
    record = logging.LogRecord("oase_control.test", logging.INFO, __file__, 10, msg, args, None)
    if extra_data is not None:
        record.extra_data = extra_data
    return record


def test_human_formatter_appends_context_and_correlation():
    formatter = HumanReadableFormatter()
    with correlation_context("0123456789abcdef"):
        line = formatter.format(make_record(extra_data={"device": "192.168.1.50", "attempt": 2}))

    assert "[01234567] > State idle -> discovering" in line
    assert line.endswith(" | device=192.168.1.50 | attempt=2")


def test_human_formatter_without_correlation():
    formatter = HumanReadableFormatter(with_correlation=False)
    with correlation_context("0123456789abcdef"):
        line = formatter.format(make_record())
    assert "[01234567]" not in line
    assert line.endswith("> State idle -> discovering")


def test_json_formatter():
    with correlation_context("session-1"):
        payload = json.loads(JSONFormatter().format(make_record(extra_data={"port": 5999})))

    assert payload["message"] == "State idle -> discovering"
    assert payload["level"] == "INFO"
    assert payload["correlation_id"] == "session-1"
    assert payload["context"] == {"port": 5999}


def test_logger_writes_to_json_file(tmp_path):
    log_file = tmp_path / "logs" / "oase.json"
    logger = get_logger("oase_control.test_json_file", log_format="json", json_file=log_file)

    logger.warning("Retry in %ds", 60, extra={"reason": "timeout"})

    entry = json.loads(log_file.read_text().splitlines()[-1])
    assert entry["message"] == "Retry in 60s"
    assert entry["context"] == {"reason": "timeout"}
    assert entry["function"] == "test_logger_writes_to_json_file"


def test_set_global_level_targets_prefix():
    ours = get_logger("oase_control.test_level")
    other = logging.getLogger("unrelated.test_level")
    other.setLevel(logging.WARNING)

    set_global_level(logging.DEBUG)

    assert ours.is_enabled_for(logging.DEBUG)
    assert other.level == logging.WARNING
    set_global_level(logging.INFO)


def test_human_output_to_file(tmp_path):
    log_file = tmp_path / "console" / "oase.log"
    logger = get_logger("oase_control.test_human_file", log_format="human", human_output=str(log_file))

    logger.info("Device found at %s", "192.168.1.50", extra={"port": 5959})

    assert log_file.read_text().rstrip().endswith("> Device found at 192.168.1.50 | port=5959")
