"""
Session and request ids for the engine's log lines.

Every connection attempt runs under one session id, from discovery to
teardown. Each datagram or stream request gets ``<session>-<nonce>`` so a
timeout can be traced back to the send that opened it.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "generate_correlation_id",
    "get_correlation_id",
    "new_request_id",
    "set_correlation_id",
]

_session_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("oase_session_id", default=None)

SHORT_ID_LENGTH = 8


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    return _session_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _session_id.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """Run the block under ``correlation_id`` (a fresh one when omitted)."""
    token = _session_id.set(correlation_id or generate_correlation_id())
    try:
        yield _session_id.get() or ""
    finally:
        _session_id.reset(token)


def ensure_correlation_id() -> str:
    """Session id of the caller's context; entry points without one get a new id."""
    session_id = _session_id.get()
    if session_id is None:
        session_id = generate_correlation_id()
        _session_id.set(session_id)
    return session_id


def new_request_id() -> str:
    """Id for one outbound request, prefixed with the short session id."""
    session_id = ensure_correlation_id()
    return f"{session_id[:SHORT_ID_LENGTH]}-{generate_correlation_id()[:SHORT_ID_LENGTH]}"
