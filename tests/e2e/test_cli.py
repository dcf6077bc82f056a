"""End-to-end tests for the NodePulse CLI."""

from __future__ import annotations

import asyncio
import json
import time
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from nodepulse import __version__
from nodepulse.cli import control
from nodepulse.cli.app import app
from nodepulse.cli.control import http_base_url

if TYPE_CHECKING:
    from conftest import RunningGenerator

runner = CliRunner()

pytestmark = pytest.mark.timeout(30)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PORT", "NODEPULSE_HOST", "NODEPULSE_NODES", "NODEPULSE_WS_URL"):
        monkeypatch.delenv(name, raising=False)


def _extract_json(output: str) -> dict:
    start = output.index("{")
    end = output.rindex("}") + 1
    return json.loads(output[start:end])


@pytest.fixture
def loop_factory_calls(monkeypatch) -> list[str]:
    """Record every request for an event loop factory made by the CLI."""
    calls: list[str] = []

    def _factory():
        calls.append("factory")
        return asyncio.new_event_loop

    monkeypatch.setattr(control, "event_loop_factory", _factory)
    return calls


# ---------------------------------------------------------------------------
# Tests: version and help
# ---------------------------------------------------------------------------


def test_version_flag():
    """--version prints version and exits 0."""
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_lists_commands():
    """--help shows every sub-command."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("serve", "watch", "mode", "snapshot"):
        assert command in result.output


def test_no_args_shows_help():
    """Running without a command prints usage."""
    result = runner.invoke(app, [])
    assert "Usage" in result.output


# ---------------------------------------------------------------------------
# Tests: serve argument validation
# ---------------------------------------------------------------------------


def test_serve_rejects_invalid_port():
    """A port outside 1..65535 fails before the server starts."""
    result = runner.invoke(app, ["serve", "--port", "70000"])
    assert result.exit_code == 1
    assert "65535" in result.output


def test_serve_rejects_empty_node_list():
    """An empty --nodes list is a configuration error."""
    result = runner.invoke(app, ["serve", "--nodes", " , "])
    assert result.exit_code == 1
    assert "must not be empty" in result.output


def test_serve_rejects_bad_port_env(monkeypatch):
    """A non-numeric PORT variable is reported."""
    monkeypatch.setenv("PORT", "abc")
    result = runner.invoke(app, ["serve"])
    assert result.exit_code == 1
    assert "PORT" in result.output


# ---------------------------------------------------------------------------
# Tests: snapshot
# ---------------------------------------------------------------------------


def test_snapshot_prints_nodes_and_mode(threaded_generator: RunningGenerator):
    """snapshot fetches the node set and mode over HTTP."""
    result = runner.invoke(app, ["snapshot", "--url", threaded_generator.http_url])
    assert result.exit_code == 0, result.output
    assert _extract_json(result.output) == {"nodes": ["NYC", "LA"], "mode": "NORMAL"}


def test_snapshot_uses_configured_event_loop(
    threaded_generator: RunningGenerator, loop_factory_calls: list[str]
):
    """snapshot runs on the event loop chosen by the loop factory."""
    result = runner.invoke(app, ["snapshot", "--url", threaded_generator.http_url])
    assert result.exit_code == 0, result.output
    assert loop_factory_calls == ["factory"]


def test_snapshot_unreachable():
    """snapshot exits 1 when nothing answers."""
    result = runner.invoke(
        app, ["snapshot", "--url", "http://127.0.0.1:9", "--timeout", "1"]
    )
    assert result.exit_code == 1
    assert "Error" in result.output


# ---------------------------------------------------------------------------
# Tests: mode
# ---------------------------------------------------------------------------


def test_mode_switches_generator(threaded_generator: RunningGenerator):
    """mode sends a scenario change over the WebSocket."""
    result = runner.invoke(app, ["mode", "outage", "--url", threaded_generator.ws_url])
    assert result.exit_code == 0, result.output
    assert "OUTAGE" in result.output

    deadline = time.monotonic() + 2.0
    while threaded_generator.generator.state.mode != "OUTAGE":
        assert time.monotonic() < deadline, "mode was not applied"
        time.sleep(0.02)


def test_mode_uses_configured_event_loop(
    threaded_generator: RunningGenerator, loop_factory_calls: list[str]
):
    """mode runs on the event loop chosen by the loop factory."""
    result = runner.invoke(app, ["mode", "flap", "--url", threaded_generator.ws_url])
    assert result.exit_code == 0, result.output
    assert loop_factory_calls == ["factory"]


def test_mode_warns_on_unknown_scenario(threaded_generator: RunningGenerator):
    """Unknown scenarios are sent anyway, with a warning."""
    result = runner.invoke(app, ["mode", "chaos", "--url", threaded_generator.ws_url])
    assert result.exit_code == 0, result.output
    assert "Warning" in result.output


def test_mode_unreachable_generator(unused_ws_url: str):
    """mode exits 1 when the connection never opens."""
    result = runner.invoke(app, ["mode", "FLAP", "--url", unused_ws_url, "--timeout", "0.5"])
    assert result.exit_code == 1
    assert "could not reach" in result.output


def test_mode_rejects_non_websocket_env_url(monkeypatch):
    """An http:// NODEPULSE_WS_URL is a configuration error."""
    monkeypatch.setenv("NODEPULSE_WS_URL", "http://localhost:8092")
    result = runner.invoke(app, ["mode", "FLAP"])
    assert result.exit_code == 1
    assert "ws://" in result.output


# ---------------------------------------------------------------------------
# Tests: watch
# ---------------------------------------------------------------------------


def test_watch_runs_for_duration(threaded_generator: RunningGenerator):
    """watch streams into the live table and stops after --duration."""
    result = runner.invoke(
        app, ["watch", "--url", threaded_generator.ws_url, "--duration", "1.0"]
    )
    assert result.exit_code == 0, result.output
    assert "NYC" in result.output
    assert "LA" in result.output
    assert "mode=NORMAL" in result.output


def test_watch_uses_configured_event_loop(
    threaded_generator: RunningGenerator, loop_factory_calls: list[str]
):
    """watch runs on the event loop chosen by the loop factory."""
    result = runner.invoke(
        app, ["watch", "--url", threaded_generator.ws_url, "--duration", "0.3"]
    )
    assert result.exit_code == 0, result.output
    assert loop_factory_calls == ["factory"]


@pytest.mark.parametrize(
    ("ws_url", "expected"),
    [
        ("ws://127.0.0.1:8092/", "http://127.0.0.1:8092"),
        ("ws://host:8092/ws", "http://host:8092"),
        ("wss://pulse.example.com/stream?x=1", "https://pulse.example.com"),
    ],
)
def test_http_base_url(ws_url, expected):
    """The /snapshot origin is derived from the WebSocket URL."""
    assert http_base_url(ws_url) == expected
