"""Scenario parameter sets and the mutable scenario state of a generator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from nodepulse._internal.config import DEFAULT_NODES


class Mode(str, Enum):
    """Named scenarios understood by the generator."""

    NORMAL = "NORMAL"
    CONGESTION = "CONGESTION"
    OUTAGE = "OUTAGE"
    FLAP = "FLAP"


@dataclass(frozen=True)
class ScenarioParams:
    """Distribution parameters for one scenario.

    Every field is drawn as ``mean + uniform(-dev, dev)``.

    Attributes:
        latency: Mean latency in milliseconds.
        latency_dev: Latency deviation in milliseconds.
        throughput: Mean throughput in Mbps.
        throughput_dev: Throughput deviation in Mbps.
        alert: Mean alert rate.
        alert_dev: Alert rate deviation.
    """

    latency: float
    latency_dev: float
    throughput: float
    throughput_dev: float
    alert: float
    alert_dev: float


SCENARIOS: dict[str, ScenarioParams] = {
    Mode.NORMAL.value: ScenarioParams(
        latency=50.0, latency_dev=15.0, throughput=200.0, throughput_dev=25.0,
        alert=0.02, alert_dev=0.03,
    ),
    Mode.CONGESTION.value: ScenarioParams(
        latency=180.0, latency_dev=40.0, throughput=110.0, throughput_dev=50.0,
        alert=0.12, alert_dev=0.06,
    ),
    Mode.OUTAGE.value: ScenarioParams(
        latency=600.0, latency_dev=80.0, throughput=5.0, throughput_dev=10.0,
        alert=0.95, alert_dev=0.02,
    ),
    Mode.FLAP.value: ScenarioParams(
        latency=250.0, latency_dev=70.0, throughput=180.0, throughput_dev=60.0,
        alert=0.25, alert_dev=0.1,
    ),
}  # fmt: skip


class ScenarioState:
    """Current scenario and node set of one generator.

    The mode is stored verbatim (upper-cased) even when it names no known
    scenario; such modes fall back to NORMAL parameters when sampling.

    Attributes:
        nodes: Ordered node ids the generator emits samples for.
    """

    def __init__(
        self,
        nodes: tuple[str, ...] = DEFAULT_NODES,
        mode: str = Mode.NORMAL.value,
        scenarios: dict[str, ScenarioParams] | None = None,
    ) -> None:
        self.nodes = tuple(nodes)
        self._mode = mode
        self._scenarios = scenarios if scenarios is not None else SCENARIOS

    @property
    def mode(self) -> str:
        """Return the current mode string."""
        return self._mode

    @property
    def is_known_mode(self) -> bool:
        """Return True if the current mode has its own parameter set."""
        return self._mode in self._scenarios

    def set_mode(self, value: Any) -> str:
        """Switch to ``str(value).upper()`` without validating it.

        Returns:
            The stored mode.
        """
        self._mode = str(value).upper()
        return self._mode

    def params(self) -> ScenarioParams:
        """Return the parameters of the current mode, NORMAL if unknown."""
        return self._scenarios.get(self._mode, self._scenarios[Mode.NORMAL.value])
