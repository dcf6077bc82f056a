"""Shared test fixtures for the NodePulse test suite."""

from __future__ import annotations

import asyncio
import socket
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import aiohttp
import pytest
from aiohttp import web

from nodepulse._internal.config import GeneratorConfig
from nodepulse.generator.server import MetricGenerator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterator


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


# =============================================================================
# Network utilities
# =============================================================================


def _get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks and tasks on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# =============================================================================
# Manual scheduler
# =============================================================================


@dataclass
class _FakeHandle:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Scheduler whose clock only moves when ``advance`` is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self._handles: list[_FakeHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> _FakeHandle:
        handle = _FakeHandle(due=self.now + delay, callback=callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> list[_FakeHandle]:
        """Handles that are neither fired nor cancelled."""
        return [h for h in self._handles if not h.cancelled]

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due callbacks in order.

        Returns:
            Number of callbacks fired.
        """
        target = self.now + seconds
        fired = 0
        while True:
            due = [h for h in self.pending if h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due)
            self._handles.remove(handle)
            self.now = handle.due
            handle.callback()
            fired += 1
        self.now = target
        return fired


@pytest.fixture
def fake_scheduler() -> FakeScheduler:
    """Manually advanced scheduler for reconnect and heartbeat timers."""
    return FakeScheduler()


# =============================================================================
# In-memory WebSocket transport
# =============================================================================


@dataclass
class FakeMessage:
    type: aiohttp.WSMsgType
    data: Any = None


class FakeSocket:
    """Client socket driven by the test: feed text in, read sends out."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self.fail_sends = False
        self._inbox: asyncio.Queue[FakeMessage] = asyncio.Queue()

    def feed_text(self, text: str) -> None:
        self._inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.TEXT, text))

    def feed_error(self, exc: BaseException) -> None:
        self._inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.ERROR, exc))

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        self.closed = True
        self._inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.CLOSED))

    async def send_str(self, data: str) -> None:
        if self.closed or self.fail_sends:
            raise ConnectionResetError("socket closed")
        self.sent.append(data)

    async def close(self) -> bool:
        if not self.closed:
            self.drop()
        return True

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> FakeMessage:
        msg = await self._inbox.get()
        if msg.type == aiohttp.WSMsgType.CLOSED:
            raise StopAsyncIteration
        return msg


@dataclass
class FakeConnector:
    """Connector returning ``FakeSocket`` objects, or failing on demand."""

    failures: int = 0
    gate: asyncio.Event | None = None
    calls: int = 0
    sockets: list[FakeSocket] = field(default_factory=list)

    async def __call__(self, url: str) -> FakeSocket:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionRefusedError(f"cannot reach {url}")
        sock = FakeSocket()
        self.sockets.append(sock)
        return sock

    @property
    def last(self) -> FakeSocket:
        return self.sockets[-1]


@pytest.fixture
def fake_connector() -> FakeConnector:
    """Connector producing in-memory sockets."""
    return FakeConnector()


# =============================================================================
# Live generator server
# =============================================================================


@dataclass
class RunningGenerator:
    generator: MetricGenerator
    http_url: str
    ws_url: str


@pytest.fixture
async def generator_server() -> AsyncIterator[RunningGenerator]:
    """Generator served by aiohttp on a free port with a fast tick."""
    port = _get_free_port()
    config = GeneratorConfig(host="127.0.0.1", port=port, tick_interval=0.05, nodes=("NYC", "LA"))
    generator = MetricGenerator(config)
    runner = web.AppRunner(generator.build_app())
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    yield RunningGenerator(
        generator=generator,
        http_url=f"http://127.0.0.1:{port}",
        ws_url=f"ws://127.0.0.1:{port}/",
    )
    await runner.cleanup()


@pytest.fixture
def unused_ws_url() -> str:
    """WebSocket URL on a local port nothing listens on."""
    return f"ws://127.0.0.1:{_get_free_port()}/"


@pytest.fixture
def threaded_generator() -> Iterator[RunningGenerator]:
    """Generator running on its own loop in a background thread.

    For CLI tests, which drive their own event loop through ``asyncio.run``.
    """
    port = _get_free_port()
    config = GeneratorConfig(host="127.0.0.1", port=port, tick_interval=0.05, nodes=("NYC", "LA"))
    generator = MetricGenerator(config)
    loop = asyncio.new_event_loop()
    runner = web.AppRunner(generator.build_app())
    started = threading.Event()

    async def _start() -> None:
        await runner.setup()
        await web.TCPSite(runner, "127.0.0.1", port).start()
        started.set()

    def _serve() -> None:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(_start())
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_serve, daemon=True)
    thread.start()
    assert started.wait(timeout=5.0), "generator did not start"

    yield RunningGenerator(
        generator=generator,
        http_url=f"http://127.0.0.1:{port}",
        ws_url=f"ws://127.0.0.1:{port}/",
    )

    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5.0)
