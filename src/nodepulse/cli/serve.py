"""``nodepulse serve``: run the telemetry generator."""

from __future__ import annotations

import dataclasses
import logging

import typer
from rich.console import Console
from rich.panel import Panel

from nodepulse._internal.config import load_generator_config, parse_nodes, validate_port
from nodepulse._internal.errors import NodePulseError
from nodepulse._internal.logging import setup_logging
from nodepulse.generator.server import run_generator

console = Console(stderr=True)


def serve_cmd(
    host: str | None = typer.Option(
        None,
        "--host",
        help="Bind address (default: $NODEPULSE_HOST or 0.0.0.0).",
    ),
    port: int | None = typer.Option(
        None,
        "--port",
        "-p",
        help="Listen port (default: $PORT or 8092).",
    ),
    tick_ms: int = typer.Option(
        800,
        "--tick-ms",
        help="Milliseconds between two broadcasts.",
        min=1,
    ),
    nodes: str | None = typer.Option(
        None,
        "--nodes",
        "-n",
        help="Comma-separated node ids (default: $NODEPULSE_NODES or five regions).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit structured JSON logs.",
    ),
) -> None:
    """Serve synthetic multi-node telemetry over WebSocket."""
    try:
        config = load_generator_config()
        overrides: dict[str, object] = {"tick_interval": tick_ms / 1000.0}
        if host is not None:
            overrides["host"] = host
        if port is not None:
            overrides["port"] = validate_port(port)
        if nodes is not None:
            overrides["nodes"] = parse_nodes(nodes)
        config = dataclasses.replace(config, **overrides)
    except NodePulseError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    setup_logging(logging.DEBUG if verbose else logging.INFO, json_format=json_logs)

    console.print(
        Panel(
            f"[bold]WebSocket:[/bold] ws://{config.host}:{config.port}/\n"
            f"[bold]Snapshot:[/bold]  http://{config.host}:{config.port}/snapshot\n"
            f"[bold]Nodes:[/bold]     {', '.join(config.nodes)}\n"
            f"[bold]Tick:[/bold]      {tick_ms}ms",
            title="NodePulse generator",
            border_style="cyan",
        )
    )

    run_generator(config)
