"""Configuration loading for the NodePulse generator and client."""

from __future__ import annotations

import os
from dataclasses import dataclass

from nodepulse._internal.errors import ConfigError

DEFAULT_NODES: tuple[str, ...] = ("NYC", "LA", "Frankfurt", "Tokyo", "Sydney")

# The client default points at 8081 while the generator listens on 8092.
# Deployments wire them together through PORT / NODEPULSE_WS_URL.
DEFAULT_PORT = 8092
DEFAULT_WS_URL = "ws://localhost:8081"


@dataclass(frozen=True)
class GeneratorConfig:
    """Settings for the telemetry generator process.

    Attributes:
        host: Interface the HTTP/WebSocket server binds to.
        port: Listen port for both the WebSocket and the HTTP side channel.
        tick_interval: Seconds between two ``multi-metric`` broadcasts.
        nodes: Ordered node ids the generator emits samples for.
    """

    host: str = "0.0.0.0"  # noqa: S104
    port: int = DEFAULT_PORT
    tick_interval: float = 0.8
    nodes: tuple[str, ...] = DEFAULT_NODES


@dataclass(frozen=True)
class ClientConfig:
    """Settings for the streaming client.

    Attributes:
        url: WebSocket endpoint of the generator.
        reconnect_delay: Fixed delay in seconds before every reconnect attempt.
        heartbeat_interval: Seconds between two ``ping`` envelopes.
        history_capacity: Samples retained per node by the metric store.
    """

    url: str = DEFAULT_WS_URL
    reconnect_delay: float = 1.5
    heartbeat_interval: float = 20.0
    history_capacity: int = 600


def parse_nodes(raw: str) -> tuple[str, ...]:
    """Parse a comma-separated node list.

    Args:
        raw: Text such as ``"NYC, LA,Tokyo"``.

    Returns:
        Tuple of trimmed node ids in their original order.

    Raises:
        ConfigError: If the list is empty or names a node twice.
    """
    nodes = tuple(part.strip() for part in raw.split(",") if part.strip())
    if not nodes:
        msg = f"node list must not be empty, got: {raw!r}"
        raise ConfigError(msg)
    if len(set(nodes)) != len(nodes):
        msg = f"node list must not contain duplicates, got: {raw!r}"
        raise ConfigError(msg)
    return nodes


def validate_port(port: int) -> int:
    """Return *port* if it is a usable TCP port.

    Raises:
        ConfigError: If *port* is outside 1..65535.
    """
    if not 1 <= port <= 65535:
        msg = f"PORT must be between 1 and 65535, got: {port}"
        raise ConfigError(msg)
    return port


def load_generator_config() -> GeneratorConfig:
    """Load generator configuration from environment variables.

    Environment variables:
        PORT: Listen port (default: 8092).
        NODEPULSE_HOST: Bind address (default: 0.0.0.0).
        NODEPULSE_NODES: Comma-separated node ids (default: five regions).

    Returns:
        Populated GeneratorConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    port_str = os.environ.get("PORT", str(DEFAULT_PORT))
    try:
        port = int(port_str)
    except ValueError:
        msg = f"PORT must be an integer, got: {port_str!r}"
        raise ConfigError(msg) from None

    nodes_str = os.environ.get("NODEPULSE_NODES")
    nodes = parse_nodes(nodes_str) if nodes_str is not None else DEFAULT_NODES

    return GeneratorConfig(
        host=os.environ.get("NODEPULSE_HOST", "0.0.0.0"),  # noqa: S104
        port=validate_port(port),
        nodes=nodes,
    )


def load_client_config() -> ClientConfig:
    """Load client configuration from environment variables.

    Environment variables:
        NODEPULSE_WS_URL: Generator WebSocket URL (default: ws://localhost:8081).

    Returns:
        Populated ClientConfig instance.

    Raises:
        ConfigError: If the URL does not use the ws:// or wss:// scheme.
    """
    url = os.environ.get("NODEPULSE_WS_URL", DEFAULT_WS_URL)
    if not url.startswith(("ws://", "wss://")):
        msg = f"NODEPULSE_WS_URL must start with ws:// or wss://, got: {url!r}"
        raise ConfigError(msg)
    return ClientConfig(url=url)
