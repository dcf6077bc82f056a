"""Main Typer application: entry point for the ``nodepulse`` CLI."""

from __future__ import annotations

import typer

from nodepulse import __version__
from nodepulse.cli.control import mode_cmd, snapshot_cmd
from nodepulse.cli.serve import serve_cmd
from nodepulse.cli.watch import watch_cmd

app = typer.Typer(
    name="nodepulse",
    help="Stream synthetic per-node network telemetry.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("serve", help="Run the telemetry generator.")(serve_cmd)
app.command("watch", help="Display live telemetry from a generator.")(watch_cmd)
app.command("mode", help="Switch the scenario of a running generator.")(mode_cmd)
app.command("snapshot", help="Print a generator's node set and mode.")(snapshot_cmd)


def _version_callback(value: bool) -> None:
    """Print version and exit.

    Args:
        value: True if --version was passed.
    """
    if value:
        typer.echo(f"nodepulse {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """NodePulse: stream synthetic per-node network telemetry."""
