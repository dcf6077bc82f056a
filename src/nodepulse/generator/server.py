"""Telemetry generator: WebSocket broadcast loop plus an HTTP side channel."""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import TYPE_CHECKING, Any

from aiohttp import WSMsgType, web

from nodepulse._internal.clock import now_ms
from nodepulse._internal.config import GeneratorConfig
from nodepulse._internal.logging import get_logger
from nodepulse._internal.loop import event_loop_factory
from nodepulse.generator.sampler import SampleFactory
from nodepulse.generator.scenarios import ScenarioState
from nodepulse.protocol import encode_info, encode_multi_metric

if TYPE_CHECKING:
    import random
    from collections.abc import AsyncIterator

    from nodepulse._internal.types import Clock

logger = get_logger("generator.server")

# Errors a write to a subscriber may raise once it has gone away.
_SEND_ERRORS = (ConnectionError, RuntimeError)


class MetricGenerator:
    """Synthesizes multi-node telemetry and broadcasts it to subscribers.

    Every ``tick_interval`` one sample per node is generated under the
    current scenario and sent as a single ``multi-metric`` envelope to every
    open WebSocket subscriber. Delivery is lossy: closed subscribers are
    skipped and nothing is queued. Any inbound message with a ``mode`` field
    switches the scenario.

    Attributes:
        config: Generator settings.
        state: Scenario state shared by every subscriber.
    """

    def __init__(
        self,
        config: GeneratorConfig | None = None,
        *,
        rng: random.Random | None = None,
        clock: Clock = now_ms,
    ) -> None:
        """Initialize the generator in NORMAL mode.

        Args:
            config: Generator settings. Defaults to ``GeneratorConfig()``.
            rng: Random source for sample synthesis.
            clock: Epoch-milliseconds clock for sample timestamps.
        """
        self.config = config or GeneratorConfig()
        self.state = ScenarioState(nodes=self.config.nodes)
        self._factory = SampleFactory(self.state, rng=rng, clock=clock)
        self._subscribers: set[web.WebSocketResponse] = set()
        self._tick_count = 0

    @property
    def subscriber_count(self) -> int:
        """Return the number of connected WebSocket subscribers."""
        return len(self._subscribers)

    @property
    def tick_count(self) -> int:
        """Return the number of ticks broadcast so far."""
        return self._tick_count

    def snapshot(self) -> dict[str, Any]:
        """Return the current node set and mode for polling consumers."""
        return {"nodes": list(self.state.nodes), "mode": self.state.mode}

    def handle_control(self, message: Any) -> bool:
        """Apply an inbound control message.

        Args:
            message: Decoded JSON value received from a subscriber.

        Returns:
            True if the message carried a ``mode`` and the scenario changed.
        """
        if not isinstance(message, dict) or not message.get("mode"):
            return False
        mode = self.state.set_mode(message["mode"])
        logger.info("Mode -> %s", mode)
        if not self.state.is_known_mode:
            logger.warning("Unknown mode %r, sampling with NORMAL parameters", mode)
        return True

    async def broadcast_tick(self) -> int:
        """Generate one tick and send it to every open subscriber.

        Returns:
            Number of subscribers the envelope was written to.
        """
        text = encode_multi_metric(self._factory.tick())
        self._tick_count += 1

        delivered = 0
        for ws in list(self._subscribers):
            if ws.closed:
                continue
            try:
                await ws.send_str(text)
            except _SEND_ERRORS:
                logger.debug("Dropping tick for a failing subscriber", exc_info=True)
                continue
            delivered += 1
        return delivered

    async def run_ticks(self) -> None:
        """Broadcast forever at the configured interval."""
        interval = self.config.tick_interval
        while True:
            await asyncio.sleep(interval)
            await self.broadcast_tick()

    # ------------------------------------------------------------------
    # aiohttp application
    # ------------------------------------------------------------------

    def build_app(self) -> web.Application:
        """Build the aiohttp application serving this generator.

        Routes:
            ``GET /`` WebSocket upgrade, or ``{"ok": true}`` for plain HTTP.
            ``GET /ws`` WebSocket endpoint.
            ``GET /health`` ``{"ok": true}``.
            ``GET /snapshot`` ``{"nodes": [...], "mode": "..."}``.

        The tick loop starts and stops with the application.
        """
        app = web.Application()
        app.router.add_get("/", self._handle_root)
        app.router.add_get("/ws", self._handle_ws)
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/snapshot", self._handle_snapshot)
        app.cleanup_ctx.append(self._tick_context)
        return app

    async def _tick_context(self, app: web.Application) -> AsyncIterator[None]:
        task = asyncio.create_task(self.run_ticks(), name="nodepulse-ticks")
        logger.info(
            "Broadcasting %d nodes every %.0fms",
            len(self.state.nodes),
            self.config.tick_interval * 1000,
        )
        yield
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        for ws in list(self._subscribers):
            await ws.close()

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"ok": True})

    async def _handle_snapshot(self, request: web.Request) -> web.Response:
        return web.json_response(self.snapshot())

    async def _handle_root(self, request: web.Request) -> web.StreamResponse:
        ws = web.WebSocketResponse()
        if not ws.can_prepare(request).ok:
            return await self._handle_health(request)
        return await self._serve_subscriber(ws, request)

    async def _handle_ws(self, request: web.Request) -> web.StreamResponse:
        return await self._serve_subscriber(web.WebSocketResponse(), request)

    async def _serve_subscriber(
        self,
        ws: web.WebSocketResponse,
        request: web.Request,
    ) -> web.WebSocketResponse:
        await ws.prepare(request)
        logger.info("Client connected from %s", request.remote)

        try:
            await ws.send_str(encode_info(self.state.nodes, self.state.mode))
        except _SEND_ERRORS:
            logger.debug("Client left before receiving info", exc_info=True)
            return ws

        self._subscribers.add(ws)
        try:
            async for msg in ws:
                if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                    self._on_message(msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning("Subscriber connection error: %s", ws.exception())
        finally:
            self._subscribers.discard(ws)
            logger.info("Client disconnected from %s", request.remote)
        return ws

    def _on_message(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.debug("Ignoring non-JSON message: %r", raw)
            return
        self.handle_control(message)


def run_generator(config: GeneratorConfig) -> None:
    """Serve a generator until interrupted.

    Args:
        config: Bind address, port, tick interval and node set.
    """
    generator = MetricGenerator(config)
    logger.info("Generator listening on %s:%d", config.host, config.port)
    web.run_app(
        generator.build_app(),
        host=config.host,
        port=config.port,
        print=None,
        loop=event_loop_factory()(),
    )
