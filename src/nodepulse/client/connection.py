"""Resilient single WebSocket connection to the telemetry generator."""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Protocol

import aiohttp

from nodepulse._internal.clock import now_ms
from nodepulse._internal.logging import get_logger
from nodepulse.client.timers import LoopScheduler, PeriodicTimer
from nodepulse.protocol import decode_envelope, encode_ping, normalize, to_json

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from nodepulse._internal.types import Clock
    from nodepulse.client.bus import EventBus
    from nodepulse.client.timers import Scheduler, TimerHandle

logger = get_logger("client.connection")

RECONNECT_DELAY = 1.5
HEARTBEAT_INTERVAL = 20.0

# Errors a socket write or close may raise once the peer has gone away.
_TRANSPORT_ERRORS = (ConnectionError, aiohttp.ClientError, RuntimeError)


class WebSocketLike(Protocol):
    """The subset of ``aiohttp.ClientWebSocketResponse`` the manager uses."""

    @property
    def closed(self) -> bool: ...

    async def send_str(self, data: str) -> None: ...

    async def close(self) -> Any: ...

    def __aiter__(self) -> AsyncIterator[Any]: ...


class ConnectionState(Enum):
    """Lifecycle of the logical connection."""

    DISCONNECTED = auto()
    CONNECTING = auto()
    OPEN = auto()


class ConnectionManager:
    """Owns exactly one logical connection to the generator.

    Transient failures are absorbed: establishment failures and drops of an
    open connection both lead to a reconnect attempt after a fixed delay,
    forever. While open, a ``ping`` envelope is sent periodically as a
    keepalive. Inbound envelopes are decoded, normalized and published on
    the bus as ``metric``, ``nodes`` and ``mode`` events; connection
    lifecycle is published as ``open``, ``close`` and ``error``.

    ``connect()`` must be called from a running event loop.

    Example::

        bus = EventBus()
        store = MetricStore()
        store.attach(bus)
        async with ConnectionManager("ws://localhost:8092", bus) as conn:
            conn.connect()
            ...
    """

    def __init__(
        self,
        url: str,
        bus: EventBus,
        *,
        connector: Callable[[str], Awaitable[WebSocketLike]] | None = None,
        scheduler: Scheduler | None = None,
        reconnect_delay: float = RECONNECT_DELAY,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        clock: Clock = now_ms,
    ) -> None:
        """Initialize a disconnected manager.

        Args:
            url: WebSocket endpoint of the generator.
            bus: Bus receiving canonical and lifecycle events.
            connector: Coroutine function opening a socket for a URL.
                Defaults to ``aiohttp.ClientSession.ws_connect`` on a
                session owned by this manager.
            scheduler: Source of delayed callbacks for the reconnect and
                heartbeat timers. Defaults to the running asyncio loop.
            reconnect_delay: Seconds to wait before every reconnect attempt.
            heartbeat_interval: Seconds between two ``ping`` envelopes.
            clock: Epoch-milliseconds clock stamped on pings.

        Raises:
            ValueError: If a delay is not positive.
        """
        if reconnect_delay <= 0:
            msg = f"reconnect_delay must be positive, got {reconnect_delay}"
            raise ValueError(msg)

        self.url = url
        self._bus = bus
        self._connector = connector or self._aiohttp_connect
        self._scheduler = scheduler or LoopScheduler()
        self._reconnect_delay = reconnect_delay
        self._clock = clock

        self._heartbeat = PeriodicTimer(self._scheduler, heartbeat_interval, self._send_ping)
        self._reconnect_handle: TimerHandle | None = None
        self._session: aiohttp.ClientSession | None = None
        self._socket: WebSocketLike | None = None
        self._attempt: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()

        # Bumped by disconnect(); attempts from an older generation are stale.
        self._generation = 0
        self._state = ConnectionState.DISCONNECTED
        self._connected = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        """Return the current connection state."""
        return self._state

    @property
    def connected(self) -> bool:
        """Return True while the transport is open."""
        return self._connected

    @property
    def reconnect_pending(self) -> bool:
        """Return True if a reconnect attempt is scheduled."""
        return self._reconnect_handle is not None

    @property
    def heartbeat_running(self) -> bool:
        """Return True while the keepalive timer is armed."""
        return self._heartbeat.running

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Start a connection attempt unless one is open or in progress."""
        if self._state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            return

        self._cancel_reconnect()
        self._state = ConnectionState.CONNECTING
        logger.info("Connecting to %s", self.url)
        self._attempt = asyncio.create_task(
            self._run(self._generation),
            name="nodepulse-connection",
        )

    async def disconnect(self) -> None:
        """Close the connection and stop every timer.

        No reconnect happens afterwards until ``connect()`` is called again.
        An attempt still in flight is not cancelled; when it resolves its
        socket is closed and discarded.
        """
        self._generation += 1
        self._cancel_reconnect()
        self._heartbeat.stop()

        socket, self._socket = self._socket, None
        was_connected = self._connected
        self._state = ConnectionState.DISCONNECTED
        self._connected = False

        if socket is not None:
            try:
                await socket.close()
            except _TRANSPORT_ERRORS:
                logger.debug("Error while closing socket", exc_info=True)

        if was_connected:
            logger.info("Disconnected from %s", self.url)
            self._bus.emit("close")

    async def send(self, obj: Any) -> bool:
        """Send *obj* as JSON if the connection is open.

        Args:
            obj: JSON-serializable control message, e.g. ``{"mode": "FLAP"}``.

        Returns:
            True if the message was handed to the transport, False if the
            connection was not open, *obj* could not be serialized or the
            write failed.
        """
        try:
            text = to_json(obj)
        except (TypeError, ValueError):
            logger.debug("Cannot serialize outbound message %r", obj, exc_info=True)
            return False
        return await self._send_text(text)

    async def aclose(self) -> None:
        """Disconnect, cancel any in-flight attempt and release the session."""
        await self.disconnect()

        attempt, self._attempt = self._attempt, None
        if attempt is not None and not attempt.done():
            attempt.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await attempt

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> ConnectionManager:
        """Return the manager; call ``connect()`` to start streaming."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Tear everything down."""
        await self.aclose()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def _aiohttp_connect(self, url: str) -> WebSocketLike:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return await self._session.ws_connect(url)

    async def _run(self, generation: int) -> None:
        """Open the socket, then read envelopes until it closes."""
        try:
            socket = await self._connector(self.url)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if generation != self._generation:
                return
            logger.warning("Connection to %s failed: %s", self.url, exc)
            self._handle_drop(exc)
            return

        if generation != self._generation:
            logger.debug("Discarding connection that opened after disconnect()")
            with contextlib.suppress(*_TRANSPORT_ERRORS):
                await socket.close()
            return

        self._socket = socket
        self._state = ConnectionState.OPEN
        self._connected = True
        logger.info("Connected to %s", self.url)
        self._bus.emit("open")
        self._heartbeat.start()

        error: BaseException | None = None
        try:
            async for message in socket:
                if message.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    self._dispatch(message.data)
                elif message.type == aiohttp.WSMsgType.ERROR:
                    error = message.data
                    break
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = exc

        if generation != self._generation:
            return

        self._socket = None
        if not socket.closed:
            with contextlib.suppress(*_TRANSPORT_ERRORS):
                await socket.close()
        logger.warning("Connection to %s lost", self.url)
        self._handle_drop(error)

    def _handle_drop(self, error: BaseException | None) -> None:
        """Shared recovery path for failed attempts and dropped connections."""
        self._state = ConnectionState.DISCONNECTED
        self._connected = False
        self._heartbeat.stop()
        if error is not None:
            self._bus.emit("error", error)
        self._bus.emit("close")
        self._schedule_reconnect()

    def _dispatch(self, raw: str | bytes) -> None:
        """Publish every canonical event of one envelope, in order."""
        for event, payload in normalize(decode_envelope(raw)):
            self._bus.emit(event, payload)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            return
        logger.debug("Reconnecting in %.1fs", self._reconnect_delay)
        self._reconnect_handle = self._scheduler.call_later(
            self._reconnect_delay,
            self._fire_reconnect,
        )

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        self.connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _send_ping(self) -> None:
        task = asyncio.get_running_loop().create_task(self._send_text(encode_ping(self._clock())))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_text(self, text: str) -> bool:
        socket = self._socket
        if self._state is not ConnectionState.OPEN or socket is None or socket.closed:
            return False
        try:
            await socket.send_str(text)
        except _TRANSPORT_ERRORS:
            logger.debug("Send failed", exc_info=True)
            return False
        return True
