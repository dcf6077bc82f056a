"""Bounded in-memory per-node history of telemetry samples."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

import numpy as np

from nodepulse._internal.errors import ConfigError
from nodepulse.metrics.models import MetricSample, NodeStats

if TYPE_CHECKING:
    from collections.abc import Iterable

    from nodepulse.client.bus import EventBus

MAX_POINTS_PER_NODE = 600

AGGREGATE_NODE = "ALL"


class MetricStore:
    """Single source of truth for per-node series and derived views.

    Keeps the authoritative node order, a bounded history per node (oldest
    samples evicted first) and the last sample seen for every node. All
    mutation happens on the event loop that feeds it, so no lock is taken.

    Attributes:
        capacity: Maximum number of samples retained per node.
    """

    def __init__(self, capacity: int = MAX_POINTS_PER_NODE) -> None:
        """Initialize an empty store.

        Args:
            capacity: Samples retained per node. Must be >= 1.

        Raises:
            ConfigError: If *capacity* < 1.
        """
        if capacity < 1:
            msg = f"capacity must be >= 1, got {capacity}"
            raise ConfigError(msg)
        self.capacity = capacity
        self._nodes: list[str] = []
        self._history: dict[str, deque[MetricSample]] = {}
        self._last: dict[str, MetricSample | None] = {}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_nodes(self, nodes: Iterable[str]) -> None:
        """Replace the authoritative node order.

        New nodes get empty slots. Tracked nodes missing from *nodes* lose
        their history and last value entirely.

        Args:
            nodes: Ordered node ids. Repeated ids keep their first position.
        """
        ordered = list(dict.fromkeys(nodes))
        self._nodes = ordered
        for node in ordered:
            if node not in self._history:
                self._history[node] = deque(maxlen=self.capacity)
            self._last.setdefault(node, None)

        keep = set(ordered)
        for node in [n for n in self._history if n not in keep]:
            del self._history[node]
            self._last.pop(node, None)

    def push(self, sample: MetricSample) -> None:
        """Append a sample to its node's history.

        Unknown nodes are created on the fly and appended to the node order.
        The sample is stored as given; values are not re-validated.

        Args:
            sample: The sample to record.
        """
        node = sample.node
        history = self._history.get(node)
        if history is None:
            history = self._history[node] = deque(maxlen=self.capacity)
        # maxlen drops from the left once the deque is full
        history.append(sample)
        self._last[node] = sample
        if node not in self._nodes:
            self._nodes.append(node)

    def push_many(self, samples: Iterable[MetricSample]) -> None:
        """Push every sample in input order."""
        for sample in samples:
            self.push(sample)

    def clear(self) -> None:
        """Forget every node, history and last value."""
        self._nodes = []
        self._history = {}
        self._last = {}

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> list[str]:
        """Return a copy of the tracked node order."""
        return list(self._nodes)

    def history(self, node: str) -> list[MetricSample]:
        """Return a copy of *node*'s history, oldest first."""
        return list(self._history.get(node, ()))

    def last(self, node: str) -> MetricSample | None:
        """Return the most recent sample of *node*, if any."""
        return self._last.get(node)

    @property
    def last_aggregate(self) -> MetricSample | None:
        """Mean of the latest sample of every node that has one.

        Each numeric field is averaged without weighting. The timestamp is
        the newest contributing timestamp rather than their mean.

        Returns:
            A sample for the pseudo-node ``"ALL"``, or None when no node has
            reported yet.
        """
        lasts = [m for m in self._last.values() if m is not None]
        if not lasts:
            return None

        values = np.array(
            [(m.throughput, m.latency_ms, m.alert_rate, m.flow_index) for m in lasts],
            dtype=np.float64,
        )
        throughput, latency_ms, alert_rate, flow_index = values.mean(axis=0)
        return MetricSample(
            node=AGGREGATE_NODE,
            timestamp=max(m.timestamp for m in lasts),
            throughput=float(throughput),
            latency_ms=float(latency_ms),
            alert_rate=float(alert_rate),
            flow_index=float(flow_index),
        )

    @property
    def history_flat(self) -> list[MetricSample]:
        """All retained samples across nodes, sorted by timestamp.

        Recomputed on every access. Samples with equal timestamps keep node
        order, then arrival order.
        """
        merged: list[MetricSample] = []
        for node in self._nodes:
            merged.extend(self._history.get(node, ()))
        return sorted(merged, key=lambda m: m.timestamp)

    def node_stats(self, node: str) -> NodeStats | None:
        """Summarise the retained history of *node*.

        Args:
            node: Node identifier.

        Returns:
            Latency percentiles and averages, or None if *node* has no
            retained samples.
        """
        history = self._history.get(node)
        if not history:
            return None

        latencies = np.array([m.latency_ms for m in history], dtype=np.float64)
        p50, p95 = np.percentile(latencies, [50.0, 95.0])
        return NodeStats(
            node=node,
            count=len(history),
            latency_avg=float(np.mean(latencies)),
            latency_p50=float(p50),
            latency_p95=float(p95),
            latency_max=float(np.max(latencies)),
            throughput_avg=float(np.mean([m.throughput for m in history])),
            alert_rate_avg=float(np.mean([m.alert_rate for m in history])),
        )

    # ------------------------------------------------------------------
    # Bus wiring
    # ------------------------------------------------------------------

    def attach(self, bus: EventBus) -> None:
        """Feed this store from the ``metric`` and ``nodes`` events of *bus*."""
        bus.on("metric", self.push)
        bus.on("nodes", self.set_nodes)

    def detach(self, bus: EventBus) -> None:
        """Stop listening to *bus*."""
        bus.off("metric", self.push)
        bus.off("nodes", self.set_nodes)

    def __len__(self) -> int:
        """Return the total number of retained samples."""
        return sum(len(h) for h in self._history.values())

    def __contains__(self, node: object) -> bool:
        """Return True if *node* is tracked."""
        return node in self._nodes
