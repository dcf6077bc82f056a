"""Synthetic sample generation driven by the current scenario."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from nodepulse._internal.clock import now_ms
from nodepulse.metrics.models import MetricSample

if TYPE_CHECKING:
    from nodepulse._internal.types import Clock
    from nodepulse.generator.scenarios import ScenarioState


def clamp01(x: float) -> float:
    """Clamp *x* into [0, 1]."""
    return max(0.0, min(1.0, x))


def jitter(mean: float, dev: float, rng: random.Random) -> float:
    """Return ``mean`` plus a uniform offset in ``[-dev, dev]``."""
    return mean + rng.uniform(-dev, dev)


class SampleFactory:
    """Builds plausible samples for the nodes of a scenario state.

    Latency, throughput and alert rate follow the current scenario. The flow
    index is plain uniform noise in [0, 1] whatever the scenario.

    Args:
        state: Scenario state read on every sample.
        rng: Random source. Defaults to a fresh ``random.Random``.
        clock: Epoch-milliseconds clock used for sample timestamps.
    """

    def __init__(
        self,
        state: ScenarioState,
        rng: random.Random | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self._state = state
        self._rng = rng or random.Random()  # noqa: S311
        self._clock = clock

    def sample(self, node: str) -> MetricSample:
        """Generate one sample for *node* under the current scenario."""
        params = self._state.params()
        rng = self._rng
        return MetricSample(
            node=node,
            timestamp=self._clock(),
            throughput=max(0.0, jitter(params.throughput, params.throughput_dev, rng)),
            latency_ms=max(0.0, jitter(params.latency, params.latency_dev, rng)),
            alert_rate=clamp01(jitter(params.alert, params.alert_dev, rng)),
            flow_index=rng.random(),
        )

    def tick(self) -> list[MetricSample]:
        """Generate one sample per node, in node order."""
        return [self.sample(node) for node in self._state.nodes]
