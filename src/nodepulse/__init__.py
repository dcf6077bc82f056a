"""NodePulse: synthetic per-node network telemetry, streamed and stored."""

from __future__ import annotations

from nodepulse.client.bus import EventBus
from nodepulse.client.connection import ConnectionManager, ConnectionState
from nodepulse.generator.scenarios import Mode, ScenarioState
from nodepulse.generator.server import MetricGenerator
from nodepulse.metrics.models import MetricSample
from nodepulse.metrics.store import MetricStore

__version__ = "0.1.0"

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "EventBus",
    "MetricGenerator",
    "MetricSample",
    "MetricStore",
    "Mode",
    "ScenarioState",
]
