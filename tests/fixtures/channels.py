"""Fake channels and an injectable sleep for lifecycle tests.

Fake channels record what the engine sends and answer from a scripted
queue, so tests never touch real sockets.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from oase_control.transport.channel import Channel
from oase_control.transport.exceptions import HandshakeTimeoutError
from oase_control.transport.types import TransportType


class ScriptedChannel(Channel):
    """Channel that answers each write with the next scripted reply.

    A reply may be bytes (delivered on the next loop iteration), an exception
    instance (raised from send), or None (no answer, the request times out).
    """

    def __init__(self, transport_type: TransportType, request_timeout: float = 0.05) -> None:
        super().__init__(request_timeout)
        self.transport_type = transport_type
        self.replies: list[bytes | Exception | None] = []
        self.sent: list[bytes] = []
        self.connected = True
        self.connect_calls = 0
        self.close_calls = 0

    @property
    def is_available(self) -> bool:
        return self.connected

    async def connect(self) -> None:
        self.connect_calls += 1

    def _write(self, data: bytes) -> None:
        self.sent.append(data)
        reply = self.replies.pop(0) if self.replies else None
        if isinstance(reply, Exception):
            raise reply
        if reply is not None:
            asyncio.get_running_loop().call_soon(self._deliver, reply)

    async def close(self) -> None:
        self.close_calls += 1
        self._closed("closed")


class FakeStreamChannel(ScriptedChannel):
    """Stream channel stand-in with the handshake signal and a fixed listen port."""

    def __init__(self, request_timeout: float = 0.05) -> None:
        super().__init__(TransportType.TLS, request_timeout)
        self.handshake_complete = asyncio.Event()
        self.listen_port = 5999
        self.peer = ("192.168.1.50", 50000)
        self.on_disconnect: Callable[[str], None] | None = None
        self.device_dials_back = True

    async def wait_for_handshake(self, timeout: float | None = None) -> None:
        if self.device_dials_back:
            self.handshake_complete.set()
        if timeout is None:
            await self.handshake_complete.wait()
            return
        try:
            await asyncio.wait_for(self.handshake_complete.wait(), timeout=timeout)
        except TimeoutError as e:
            raise HandshakeTimeoutError(timeout) from e

    def disconnect(self, reason: str = "reset by peer") -> None:
        self.connected = False
        self._closed(reason)
        if self.on_disconnect is not None:
            self.on_disconnect(reason)


class FakeSleeper:
    """Injectable sleep: records delays, returns at once unless the delay is in ``block_on``.

    Blocking delays (the poll interval) park the caller until it is cancelled.
    """

    def __init__(self, block_on: set[float] | None = None) -> None:
        self.delays: list[float] = []
        self.block_on = block_on or set()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if delay in self.block_on:
            await asyncio.Event().wait()
        await asyncio.sleep(0)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            msg = "condition not reached"
            raise AssertionError(msg)
        await asyncio.sleep(0.001)
