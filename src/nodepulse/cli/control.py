"""``nodepulse mode`` and ``nodepulse snapshot``: talk to a running generator."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import urlsplit, urlunsplit

import aiohttp
import typer
from rich.console import Console

from nodepulse._internal.config import DEFAULT_PORT, load_client_config
from nodepulse._internal.errors import NodePulseError
from nodepulse._internal.loop import event_loop_factory
from nodepulse.client.bus import EventBus
from nodepulse.client.connection import ConnectionManager
from nodepulse.generator.scenarios import Mode

if TYPE_CHECKING:
    from collections.abc import Coroutine

T = TypeVar("T")

console = Console(stderr=True)
out = Console()


async def _request_mode(url: str, mode: str, timeout: float) -> bool:
    """Connect once, send a scenario-change request, disconnect.

    Returns:
        True if the request was written to an open connection.
    """
    bus = EventBus()
    opened = asyncio.Event()
    bus.on("open", lambda _payload: opened.set())

    async with ConnectionManager(url, bus) as conn:
        conn.connect()
        try:
            await asyncio.wait_for(opened.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return await conn.send({"mode": mode})


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run *coro* to completion on a fresh (uvloop when available) event loop."""
    with asyncio.Runner(loop_factory=event_loop_factory()) as runner:
        return runner.run(coro)


def http_base_url(ws_url: str) -> str:
    """Return the HTTP origin serving /snapshot for a generator WebSocket URL.

    Example: ``ws://host:8092/ws`` becomes ``http://host:8092``.
    """
    parts = urlsplit(ws_url)
    scheme = "https" if parts.scheme == "wss" else "http"
    return urlunsplit((scheme, parts.netloc, "", "", ""))


async def fetch_snapshot(base_url: str, timeout: float) -> dict[str, Any]:
    """GET ``/snapshot`` from a generator.

    Raises:
        aiohttp.ClientError: If the request fails or returns an error status.
        TimeoutError: If no answer arrives within *timeout* seconds.
    """
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    snapshot_url = f"{base_url.rstrip('/')}/snapshot"
    async with aiohttp.ClientSession(timeout=client_timeout) as session:
        async with session.get(snapshot_url) as resp:
            resp.raise_for_status()
            return await resp.json()


def mode_cmd(
    mode: str = typer.Argument(
        ...,
        help="Scenario to switch to: NORMAL, CONGESTION, OUTAGE or FLAP.",
    ),
    url: str | None = typer.Option(
        None,
        "--url",
        "-u",
        help="Generator WebSocket URL (default: $NODEPULSE_WS_URL or ws://localhost:8081).",
    ),
    timeout: float = typer.Option(
        5.0,
        "--timeout",
        "-t",
        help="Seconds to wait for the connection to open.",
        min=0.1,
    ),
) -> None:
    """Ask a running generator to switch scenario."""
    try:
        target = url or load_client_config().url
    except NodePulseError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    requested = mode.upper()
    if requested not in Mode.__members__:
        # The generator accepts it anyway and samples with NORMAL parameters
        console.print(f"[yellow]Warning:[/yellow] {requested} is not a known scenario.")

    if not run_async(_request_mode(target, requested, timeout)):
        console.print(f"[red]Error:[/red] could not reach generator at {target}")
        raise typer.Exit(code=1)

    console.print(f"[green]Requested mode {requested}.[/green]")


def snapshot_cmd(
    url: str = typer.Option(
        f"http://localhost:{DEFAULT_PORT}",
        "--url",
        "-u",
        help="Generator HTTP base URL.",
    ),
    timeout: float = typer.Option(
        5.0,
        "--timeout",
        "-t",
        help="Request timeout in seconds.",
        min=0.1,
    ),
) -> None:
    """Print the generator's current node set and mode."""
    try:
        snapshot = run_async(fetch_snapshot(url, timeout))
    except (aiohttp.ClientError, TimeoutError) as exc:
        console.print(f"[red]Error:[/red] could not fetch snapshot from {url}: {exc}")
        raise typer.Exit(code=1) from exc

    out.print_json(data=snapshot)
