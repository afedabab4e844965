"""Console and JSON-file logging for the OASE control engine.

Every call accepts an ``extra`` mapping (device address, packet type, retry
delay, ...) that is rendered as ``key=value`` on the console and as a
``context`` object in the JSON file. The active session id is stamped on both.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast, override

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "OaseLogger",
    "get_logger",
    "set_global_level",
]

_CONTEXT_ATTR = "extra_data"


def _record_context(record: logging.LogRecord) -> dict[str, object] | None:
    extra_data = getattr(record, _CONTEXT_ATTR, None)
    if isinstance(extra_data, Mapping) and extra_data:
        return dict(cast("Mapping[str, object]", extra_data))
    return None


def _session_id() -> str | None:
    # deferred: correlation is imported by modules that log at import time
    from oase_control.correlation import get_correlation_id

    return get_correlation_id()


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for the ``OASE_LOG_JSON_FILE`` sink."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": _session_id(),
        }
        if (context := _record_context(record)) is not None:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    def __init__(self, with_correlation: bool = True) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s> %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )
        self.with_correlation: bool = with_correlation

    @override
    def format(self, record: logging.LogRecord) -> str:
        session_id = _session_id() if self.with_correlation else None
        record.correlation_id = f"[{session_id[:8]}] " if session_id else ""
        line = super().format(record)
        if (context := _record_context(record)) is not None:
            line += "".join(f" | {key}={value}" for key, value in context.items())
        return line


def _console_handler(target: str) -> logging.Handler:
    """``stdout``, ``stderr`` or a file path; an unwritable path falls back to stdout."""
    if target == "stdout":
        return logging.StreamHandler(sys.stdout)
    if target == "stderr":
        return logging.StreamHandler(sys.stderr)
    try:
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path, mode="a")
    except OSError as e:
        print(f"Warning: cannot open log file {target}: {e}", file=sys.stderr)
        return logging.StreamHandler(sys.stdout)


def _json_handler(json_file: str | Path) -> logging.Handler | None:
    try:
        path = Path(json_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a")
    except OSError as e:
        print(f"Warning: cannot open JSON log file {json_file}: {e}", file=sys.stderr)
        return None
    handler.setFormatter(JSONFormatter())
    return handler


class OaseLogger:
    """Thin wrapper over a stdlib logger that carries ``extra`` as structured context.

    Handlers are attached once per logger name; ``log_format`` is ``human``,
    ``json`` or ``both``.
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stdout",
    ) -> None:
        from oase_control.const import OASE_DEBUG, OASE_LOG_CORRELATION_ENABLED

        self.name: str = name
        self.log_format: str = log_format
        self.logger: logging.Logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if OASE_DEBUG else logging.INFO)
        if self.logger.handlers:
            return

        handlers: list[logging.Handler] = []
        if log_format in ("json", "both") and json_file:
            if (json_handler := _json_handler(json_file)) is not None:
                handlers.append(json_handler)
        if log_format in ("human", "both"):
            console = _console_handler(human_output or "stdout")
            console.setFormatter(HumanReadableFormatter(with_correlation=OASE_LOG_CORRELATION_ENABLED))
            handlers.append(console)

        for handler in handlers:
            handler.setLevel(self.logger.level)
            self.logger.addHandler(handler)
        self.logger.propagate = False

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        # stacklevel=3: caller -> debug()/info()/... -> _log()
        record_extra = {_CONTEXT_ATTR: dict(extra)} if extra else None
        self.logger.log(level, msg, *args, extra=record_extra, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        record_extra = {_CONTEXT_ATTR: dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=record_extra, stacklevel=2)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(level)

    def is_enabled_for(self, level: int) -> bool:
        return self.logger.isEnabledFor(level)


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> OaseLogger:
    """OaseLogger for ``name``; unset arguments come from the OASE_LOG_* environment."""
    from oase_control.const import OASE_LOG_FORMAT, OASE_LOG_HUMAN_OUTPUT, OASE_LOG_JSON_FILE

    return OaseLogger(
        name,
        log_format=log_format or OASE_LOG_FORMAT,
        json_file=json_file or OASE_LOG_JSON_FILE,
        human_output=human_output or OASE_LOG_HUMAN_OUTPUT,
    )


def set_global_level(level: int, prefix: str = "oase_control") -> None:
    """Apply ``level`` to every logger under ``prefix`` created so far (``--debug``)."""
    for name, existing in logging.Logger.manager.loggerDict.items():
        if isinstance(existing, logging.Logger) and (name == prefix or name.startswith(f"{prefix}.")):
            existing.setLevel(level)
            for handler in existing.handlers:
                handler.setLevel(level)
