"""``nodepulse watch``: stream telemetry into a live terminal table."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time

import aiohttp
import typer
from rich.console import Console
from rich.live import Live
from rich.table import Table

from nodepulse._internal.config import ClientConfig, load_client_config
from nodepulse._internal.errors import NodePulseError
from nodepulse._internal.logging import get_logger, setup_logging
from nodepulse.cli.control import fetch_snapshot, http_base_url, run_async
from nodepulse.client.bus import EventBus
from nodepulse.client.connection import ConnectionManager
from nodepulse.metrics.store import AGGREGATE_NODE, MetricStore

console = Console(stderr=True)
logger = get_logger("cli.watch")

MODE_POLL_INTERVAL = 2.0


def _make_live_table(store: MetricStore, connected: bool, mode: str) -> Table:
    """Build a Rich table with the latest reading of every node.

    Args:
        store: Store fed by the connection.
        connected: Whether the connection is currently open.
        mode: Last scenario announced by the generator.

    Returns:
        Formatted Rich Table.
    """
    status = "[green]connected[/green]" if connected else "[red]disconnected[/red]"
    title = f"NodePulse  {status}" + (f"  mode={mode}" if mode else "")
    table = Table(title=title, show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Node", style="bold")
    table.add_column("Samples", justify="right")
    table.add_column("Throughput", justify="right")
    table.add_column("Latency", justify="right")
    table.add_column("p95 Latency", justify="right")
    table.add_column("Alert Rate", justify="right")
    table.add_column("Flow", justify="right")

    for node in store.nodes:
        last = store.last(node)
        stats = store.node_stats(node)
        if last is None or stats is None:
            table.add_row(node, "0", "-", "-", "-", "-", "-")
            continue
        table.add_row(
            node,
            str(stats.count),
            f"{last.throughput:.1f} Mbps",
            f"{last.latency_ms:.1f}ms",
            f"{stats.latency_p95:.1f}ms",
            f"{last.alert_rate * 100:.2f}%",
            f"{last.flow_index:.2f}",
        )

    aggregate = store.last_aggregate
    if aggregate is not None:
        table.add_row(
            AGGREGATE_NODE,
            str(len(store)),
            f"{aggregate.throughput:.1f} Mbps",
            f"{aggregate.latency_ms:.1f}ms",
            "-",
            f"{aggregate.alert_rate * 100:.2f}%",
            f"{aggregate.flow_index:.2f}",
            style="bold",
        )
    return table


async def _poll_mode(base_url: str, mode: list[str]) -> None:
    """Refresh *mode*[0] from the generator's /snapshot until cancelled.

    The generator announces its mode only in the connect-time ``info`` and
    on /snapshot, so the title is seeded and kept current from there.
    """
    while True:
        try:
            snapshot = await fetch_snapshot(base_url, timeout=MODE_POLL_INTERVAL)
        except (aiohttp.ClientError, TimeoutError) as exc:
            logger.debug("Snapshot poll failed: %s", exc)
        else:
            value = snapshot.get("mode")
            if isinstance(value, str):
                mode[0] = value
        await asyncio.sleep(MODE_POLL_INTERVAL)


async def _watch(config: ClientConfig, url: str, capacity: int, duration: float | None) -> None:
    bus = EventBus()
    store = MetricStore(capacity=capacity)
    store.attach(bus)

    # Mutable holder so the mode handler can update the displayed value
    mode: list[str] = [""]

    def _on_mode(value: str) -> None:
        mode[0] = value

    bus.on("mode", _on_mode)

    async with ConnectionManager(
        url,
        bus,
        reconnect_delay=config.reconnect_delay,
        heartbeat_interval=config.heartbeat_interval,
    ) as conn:
        conn.connect()
        poller = asyncio.create_task(_poll_mode(http_base_url(url), mode))
        start = time.monotonic()
        try:
            with Live(
                _make_live_table(store, conn.connected, mode[0]),
                console=console,
                refresh_per_second=4,
            ) as live:
                while duration is None or time.monotonic() - start < duration:
                    await asyncio.sleep(0.25)
                    live.update(_make_live_table(store, conn.connected, mode[0]))
        finally:
            poller.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await poller


def watch_cmd(
    url: str | None = typer.Option(
        None,
        "--url",
        "-u",
        help="Generator WebSocket URL (default: $NODEPULSE_WS_URL or ws://localhost:8081).",
    ),
    capacity: int = typer.Option(
        600,
        "--capacity",
        "-c",
        help="Samples retained per node.",
        min=1,
    ),
    duration: float | None = typer.Option(
        None,
        "--duration",
        "-d",
        help="Stop after this many seconds (default: run until interrupted).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
) -> None:
    """Connect to a generator and display per-node telemetry live."""
    try:
        config = load_client_config()
    except NodePulseError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    setup_logging(logging.DEBUG if verbose else logging.WARNING)

    try:
        run_async(_watch(config, url or config.url, capacity, duration))
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/yellow]")
