"""Connection lifecycle for one FM-Master device.

Sequence: discovery (UDP) -> TCP handoff (UDP) -> wait for the device to
dial back over TLS -> password check -> active (scene polling plus an
optional keepalive). Discovery and handoff failures retry with exponential
backoff. A rejected password raises AuthenticationError; anything that
breaks an active session raises SessionFailedError. In both cases the
owner restarts a fresh manager, this class does not heal past that point.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
from collections.abc import Awaitable, Callable
from enum import Enum

from oase_control.correlation import correlation_context
from oase_control.devices.fm_master import (
    ITEM_NAMES,
    build_socket_scene_get,
    build_socket_scene_set,
    decode_socket_scene,
    is_supported_device,
    validate_command,
)
from oase_control.logging_abstraction import get_logger
from oase_control.metrics import (
    record_authentication,
    record_connection_state,
    record_discovery_retry,
    record_poll,
)
from oase_control.protocol.exceptions import OaseProtocolError
from oase_control.protocol.oase_protocol import OaseProtocol
from oase_control.protocol.packet_types import SocketScene
from oase_control.structs import DeviceIdentity, DeviceState, EngineConfig, EngineEvent, EngineListener
from oase_control.transport.channel import Channel
from oase_control.transport.correlator import RequestCorrelator
from oase_control.transport.device_operations import DeviceOperations
from oase_control.transport.exceptions import (
    AuthenticationError,
    ChannelUnavailableError,
    HandoffError,
    SessionFailedError,
    UnsupportedDeviceError,
)
from oase_control.transport.retry_policy import BackoffPolicy
from oase_control.transport.stream_server import StreamChannel

logger = get_logger(__name__)

# Keepalive runs at this fraction of the threshold, starting half an interval late
_KEEPALIVE_FRACTION = 0.75
_REFRESH_AFTER_WRITE_SECONDS = 1.0


class ConnectionState(Enum):
    """Connection state enumeration."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    AWAITING_HANDOFF_ACK = "awaiting_handoff_ack"
    AWAITING_SECURE_HANDSHAKE = "awaiting_secure_handshake"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"


_ALL_STATES = [state.value for state in ConnectionState]


class ConnectionManager:
    """Drives one session with the device and exposes its typed state.

    **Single-flight**: polls, keepalives and writes on the stream channel are
    serialized by ``_command_lock``. Periodic polls and keepalives skip their
    tick while the lock is held; writes wait for it. Nothing is queued.

    **Listeners**: ``add_listener`` callbacks receive every EngineEvent with the
    current DeviceState. They may be sync or async; exceptions are logged.
    """

    def __init__(
        self,
        config: EngineConfig,
        datagram: Channel,
        stream: StreamChannel,
        protocol: OaseProtocol | None = None,
        backoff: BackoffPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.datagram = datagram
        self.stream = stream
        self.protocol = protocol or OaseProtocol()
        self.backoff = backoff or BackoffPolicy(
            initial_delay_seconds=config.backoff_initial,
            multiplier=config.backoff_multiplier,
            max_delay_seconds=config.backoff_max,
        )
        self.operations = DeviceOperations(RequestCorrelator(self.protocol), datagram, stream)
        self.state = ConnectionState.IDLE
        self.device_state = DeviceState()
        self.poll_failures_left = config.poll_retries
        self._sleep = sleep
        self._command_lock = asyncio.Lock()
        self._listeners: list[EngineListener] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._session_done: asyncio.Future[None] | None = None
        self._run_task: asyncio.Task[None] | None = None
        self._stopping = False
        self.stream.on_disconnect = self._on_stream_disconnect

    # Listeners

    def add_listener(self, listener: EngineListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EngineListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    async def _emit(self, event: EngineEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event, self.device_state)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener failed", extra={"event": str(event)})

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state is self.state:
            return
        logger.info(
            "State %s -> %s",
            self.state.value,
            new_state.value,
            extra={"device": self.config.device_host},
        )
        self.state = new_state
        record_connection_state(new_state.value, _ALL_STATES)

    @property
    def is_active(self) -> bool:
        return self.state is ConnectionState.ACTIVE

    @property
    def command_in_flight(self) -> bool:
        return self._command_lock.locked()

    # Lifecycle

    async def run(self) -> None:
        """Run one session until stop() or a fatal failure.

        Raises:
            AuthenticationError: Device rejected the password
            SessionFailedError: Active session broke (poll budget exhausted, device disconnected)

        """
        if self._stopping:
            return
        self._run_task = asyncio.current_task()
        with correlation_context():
            try:
                await self.datagram.connect()
                await self.stream.connect()
                await self._establish()
                await self._authenticate()
                await self._activate()
                assert self._session_done is not None
                await self._session_done
            finally:
                await self._teardown()

    async def _establish(self) -> None:
        """Discovery, handoff and handshake wait; retried with backoff until the device is on TLS."""
        while True:
            try:
                self._set_state(ConnectionState.DISCOVERING)
                await self._discover()
                self.backoff.reset()

                self._set_state(ConnectionState.AWAITING_HANDOFF_ACK)
                self.stream.handshake_complete.clear()
                await self._request_handoff()

                self._set_state(ConnectionState.AWAITING_SECURE_HANDSHAKE)
                await self.stream.wait_for_handshake(self.config.handshake_wait_timeout)
                logger.info("Device completed TLS handshake", extra={"peer": self.stream.peer})
                return
            except OaseProtocolError as e:
                delay = self.backoff.next_delay()
                reason = type(e).__name__
                record_discovery_retry(reason)
                logger.warning(
                    "Connection attempt failed, retrying in %.0fs",
                    delay,
                    extra={"reason": str(e), "attempt": self.backoff.attempt, "state": self.state.value},
                )
                await self._emit(EngineEvent.RETRY_SCHEDULED)
                await self._sleep(delay)

    async def _discover(self) -> DeviceIdentity:
        reply = await self.operations.discover()
        if not is_supported_device(reply.long_name):
            logger.error(
                "Unsupported device answered discovery",
                extra={"device": reply.long_name, "host": self.config.device_host},
            )
            raise UnsupportedDeviceError(reply.long_name)

        identity = DeviceIdentity(
            name=reply.name,
            serial=reply.serial,
            long_name=reply.long_name,
            host=self.config.device_host,
        )
        self.device_state.identity = identity
        logger.info(
            "Discovered device",
            extra={"name": identity.name, "serial": identity.serial, "device": identity.long_name},
        )
        return identity

    async def _request_handoff(self) -> None:
        reply = await self.operations.request_tcp_handoff(self.stream.listen_port)
        if not reply.success:
            raise HandoffError("device rejected handoff", reply.connection_count)
        logger.info(
            "TCP handoff accepted",
            extra={"port": self.stream.listen_port, "connections": reply.connection_count},
        )

    async def _authenticate(self) -> None:
        self._set_state(ConnectionState.AUTHENTICATING)
        try:
            accepted = await self.operations.check_password(
                self.config.password,
                self.config.password_unicode_escaped,
            )
        except OaseProtocolError as e:
            record_authentication("error")
            logger.error("Password check did not complete: %s", e)
            msg = f"password check failed: {e}"
            raise SessionFailedError(msg) from e

        if not accepted:
            record_authentication("rejected")
            logger.error("Device rejected the password", extra={"device": self.config.device_host})
            await self._emit(EngineEvent.AUTHENTICATION_FAILED)
            raise AuthenticationError
        record_authentication("accepted")

    async def _activate(self) -> None:
        self._session_done = asyncio.get_running_loop().create_future()
        self.poll_failures_left = self.config.poll_retries
        self._set_state(ConnectionState.ACTIVE)
        self.device_state.connected = True
        await self._emit(EngineEvent.CONNECTED)

        self._spawn(self._poll_loop())
        if self.config.poll_interval > self.config.keepalive_threshold:
            interval = self.config.keepalive_threshold * _KEEPALIVE_FRACTION
            logger.debug("Keepalive enabled every %.0fs", interval)
            self._spawn(self._keepalive_loop(interval))

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _fail_session(self, error: OaseProtocolError) -> None:
        if self._session_done is not None and not self._session_done.done():
            self._session_done.set_exception(error)

    def _on_stream_disconnect(self, reason: str) -> None:
        if self.state is ConnectionState.ACTIVE and not self._stopping:
            logger.warning("Device stream dropped during active session", extra={"reason": reason})
            self._fail_session(SessionFailedError(f"device disconnected: {reason}"))

    async def _teardown(self) -> None:
        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        was_connected = self.device_state.connected
        self.device_state.connected = False
        self._set_state(ConnectionState.IDLE)
        await self.stream.close()
        await self.datagram.close()
        if was_connected:
            await self._emit(EngineEvent.DISCONNECTED)

    async def stop(self) -> None:
        """End the session; run() returns normally once torn down."""
        self._stopping = True
        if self._session_done is not None and not self._session_done.done():
            self._session_done.set_result(None)
        elif (
            self._run_task is not None
            and not self._run_task.done()
            and self._run_task is not asyncio.current_task()
        ):
            self._run_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._run_task

    # Active session

    async def _poll_loop(self) -> None:
        while True:
            await self.poll_once()
            await self._sleep(self.config.poll_interval)

    async def _keepalive_loop(self, interval: float) -> None:
        await self._sleep(interval / 2)
        while True:
            await self.send_keepalive()
            await self._sleep(interval)

    async def _read_scene(self) -> SocketScene:
        reply = await self.operations.get_live_scene(build_socket_scene_get())
        return decode_socket_scene(reply.data)

    async def poll_once(self) -> bool:
        """Read the socket scene unless a command is in flight.

        Returns:
            True when the state was refreshed, False when skipped or failed

        """
        if not self.is_active:
            return False
        if self._command_lock.locked():
            logger.debug("Poll skipped, command in flight")
            record_poll("skipped")
            return False

        async with self._command_lock:
            try:
                scene = await self._read_scene()
            except OaseProtocolError as e:
                record_poll("failure")
                self._register_failure("poll", e)
                return False

        record_poll("success")
        self.poll_failures_left = self.config.poll_retries
        if self._apply_scene(scene):
            await self._emit(EngineEvent.STATE_CHANGED)
        return True

    async def send_keepalive(self) -> bool:
        if not self.is_active or self._command_lock.locked():
            return False
        async with self._command_lock:
            try:
                reply = await self.operations.alive()
            except OaseProtocolError as e:
                logger.warning("Keepalive failed: %s", e)
                return False
        logger.debug("Keepalive answered", extra={"serial": reply.serial})
        return True

    async def write_outlet(self, item_id: int | str, value: int | bool) -> bool:
        """Switch an outlet or set the dimmer, then refresh the state shortly after.

        Waits for any in-flight poll to finish; the write is never interleaved
        with another request on the stream channel.

        Returns:
            True when the device acknowledged the new scene

        Raises:
            InvalidCommandError: Unknown item or value out of range (nothing sent)
            ChannelUnavailableError: Session is not active
            OaseProtocolError: Transport or decode failure; counts against the poll budget

        """
        item, wire_value = validate_command(item_id, value)
        if not self.is_active:
            raise ChannelUnavailableError(self.stream.name, "session not active")

        async with self._command_lock:
            try:
                accepted = await self.operations.set_live_scene(build_socket_scene_set(item, wire_value))
            except OaseProtocolError as e:
                self._register_failure("write", e)
                raise

        if accepted:
            logger.info("Set %s to %d", ITEM_NAMES[item], wire_value)
        else:
            logger.warning("Device rejected %s=%d", ITEM_NAMES[item], wire_value)
        self._spawn(self._refresh_after_write())
        return accepted

    async def _refresh_after_write(self) -> None:
        await self._sleep(_REFRESH_AFTER_WRITE_SECONDS)
        await self.poll_once()

    def _register_failure(self, operation: str, error: OaseProtocolError) -> None:
        self.poll_failures_left -= 1
        if self.poll_failures_left <= 0:
            logger.error(
                "%s failed: %s. No retries left, session ends",
                operation.capitalize(),
                error,
            )
            self._fail_session(SessionFailedError(f"{operation} retries exhausted: {error}"))
        else:
            logger.warning(
                "%s failed: %s. Retries left: %d",
                operation.capitalize(),
                error,
                self.poll_failures_left,
            )

    def _apply_scene(self, scene: SocketScene) -> bool:
        outlets = list(scene.outlets)
        changed = outlets != self.device_state.outlets or scene.dimmer != self.device_state.dimmer
        self.device_state.outlets = outlets
        self.device_state.dimmer = scene.dimmer
        return changed
