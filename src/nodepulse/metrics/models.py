"""Telemetry sample dataclasses and their wire representation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from nodepulse._internal.errors import ProtocolError

if TYPE_CHECKING:
    from collections.abc import Mapping

__all__ = [
    "MetricSample",
    "NodeStats",
]

# Wire key -> dataclass field for the numeric part of a sample.
_NUMERIC_FIELDS: tuple[tuple[str, str], ...] = (
    ("throughput", "throughput"),
    ("latencyMs", "latency_ms"),
    ("alertRate", "alert_rate"),
    ("flowIndex", "flow_index"),
)


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a measurement
    return isinstance(value, int | float) and not isinstance(value, bool)


def _timestamp(payload: Mapping[str, Any]) -> int:
    value = payload.get("ts")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if not _is_number(value) or not math.isfinite(value):
        msg = f"field 'ts' must be a finite number, got: {value!r}"
        raise ProtocolError(msg)
    return int(value)


def _measurement(payload: Mapping[str, Any], key: str) -> float:
    """Return the field as a float, NaN when it is missing or not a number."""
    value = payload.get(key)
    if not _is_number(value):
        return math.nan
    try:
        return float(value)
    except OverflowError:
        return math.inf if value > 0 else -math.inf


@dataclass(frozen=True)
class MetricSample:
    """One telemetry reading for a single node.

    This is the canonical in-process form, independent of the envelope that
    carried it.

    Attributes:
        node: Node (region/site) identifier.
        timestamp: Wall-clock time of the reading in epoch milliseconds.
        throughput: Throughput in Mbps.
        latency_ms: Latency in milliseconds.
        alert_rate: Fraction of flows raising alerts (0.0 to 1.0).
        flow_index: Unitless flow intensity used for colouring (0.0 to 1.0).
    """

    node: str
    timestamp: int
    throughput: float
    latency_ms: float
    alert_rate: float
    flow_index: float

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready wire form of this sample."""
        return {
            "node": self.node,
            "ts": self.timestamp,
            "throughput": self.throughput,
            "latencyMs": self.latency_ms,
            "alertRate": self.alert_rate,
            "flowIndex": self.flow_index,
        }

    @classmethod
    def from_wire(
        cls,
        payload: Mapping[str, Any],
        *,
        default_node: str | None = None,
    ) -> MetricSample:
        """Build a sample from its wire form.

        Args:
            payload: Decoded JSON object with ``node``, ``ts``,
                ``throughput``, ``latencyMs``, ``alertRate`` and ``flowIndex``.
            default_node: Node id used when ``node`` is missing or not a
                string. If None, such payloads are rejected.

        Returns:
            The decoded sample. Values are taken as-is, without clamping;
            a measurement that is missing or not a number becomes NaN.

        Raises:
            ProtocolError: If the node is unusable or ``ts`` is not a
                finite number.
        """
        node = payload.get("node")
        if not isinstance(node, str):
            if default_node is None:
                msg = f"field 'node' must be a string, got: {node!r}"
                raise ProtocolError(msg)
            node = default_node

        values = {attr: _measurement(payload, key) for key, attr in _NUMERIC_FIELDS}
        return cls(node=node, timestamp=_timestamp(payload), **values)


@dataclass(frozen=True)
class NodeStats:
    """Summary of the retained history of one node.

    Attributes:
        node: Node identifier.
        count: Number of samples summarised.
        latency_avg: Mean latency in milliseconds.
        latency_p50: Median latency in milliseconds.
        latency_p95: 95th percentile latency in milliseconds.
        latency_max: Maximum latency in milliseconds.
        throughput_avg: Mean throughput in Mbps.
        alert_rate_avg: Mean alert rate.
    """

    node: str
    count: int
    latency_avg: float
    latency_p50: float
    latency_p95: float
    latency_max: float
    throughput_avg: float
    alert_rate_avg: float
