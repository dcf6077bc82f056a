"""Wire envelopes: decoding, normalization into canonical events, encoding.

Every message on the wire is a JSON object tagged by a ``type`` field.
``decode_envelope`` turns raw text into one variant of the ``Envelope``
union through an explicit discriminator table; anything that does not fit
becomes an ``UnrecognizedEnvelope`` instead of falling through silently.
``normalize`` maps each variant to the ordered events published on the bus.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from nodepulse._internal.errors import ProtocolError
from nodepulse._internal.logging import get_logger
from nodepulse.metrics.models import MetricSample

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from nodepulse._internal.types import Event, JsonObject

logger = get_logger("protocol")

# Node id used for legacy single-sample packets that carry no node.
DEFAULT_NODE = "DEFAULT"


@dataclass(frozen=True)
class InfoEnvelope:
    """Sent by the generator right after a client connects.

    Attributes:
        nodes: Ordered node ids the generator emits.
        mode: Current scenario name.
    """

    nodes: list[str]
    mode: str = ""
    kind: Literal["info"] = "info"


@dataclass(frozen=True)
class MultiMetricEnvelope:
    """One tick worth of samples, at most one per node.

    Attributes:
        samples: Entries that decoded into a sample, in batch order.
        nodes: Node ids of every entry that named one, in batch order,
            including entries whose sample could not be decoded.
    """

    samples: list[MetricSample] = field(default_factory=list)
    nodes: list[str] = field(default_factory=list)
    kind: Literal["multi-metric"] = "multi-metric"


@dataclass(frozen=True)
class MetricEnvelope:
    """Legacy single-sample packet."""

    sample: MetricSample
    kind: Literal["metric"] = "metric"


@dataclass(frozen=True)
class ModeEnvelope:
    """Scenario change announcement."""

    mode: str
    kind: Literal["mode"] = "mode"


@dataclass(frozen=True)
class UnrecognizedEnvelope:
    """Anything that is not valid JSON or not a known, well-formed type.

    Attributes:
        reason: Short description of why the payload was rejected.
    """

    reason: str
    kind: Literal["unrecognized"] = "unrecognized"


Envelope = (
    InfoEnvelope | MultiMetricEnvelope | MetricEnvelope | ModeEnvelope | UnrecognizedEnvelope
)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _decode_info(payload: JsonObject) -> Envelope:
    nodes = payload.get("nodes")
    if not isinstance(nodes, list):
        msg = f"'nodes' must be a list, got: {nodes!r}"
        raise ProtocolError(msg)
    mode = payload.get("mode")
    return InfoEnvelope(
        nodes=[n for n in nodes if isinstance(n, str)],
        mode=mode if isinstance(mode, str) else "",
    )


def _decode_multi_metric(payload: JsonObject) -> Envelope:
    data = payload.get("data")
    if not isinstance(data, list):
        msg = f"'data' must be a list, got: {data!r}"
        raise ProtocolError(msg)

    samples: list[MetricSample] = []
    nodes: list[str] = []
    for entry in data:
        if not isinstance(entry, dict) or not isinstance(entry.get("node"), str):
            continue
        nodes.append(entry["node"])
        try:
            samples.append(MetricSample.from_wire(entry))
        except ProtocolError as exc:
            logger.debug("Dropping multi-metric sample: %s", exc)
    return MultiMetricEnvelope(samples=samples, nodes=nodes)


def _decode_metric(payload: JsonObject) -> Envelope:
    return MetricEnvelope(sample=MetricSample.from_wire(payload, default_node=DEFAULT_NODE))


def _decode_mode(payload: JsonObject) -> Envelope:
    mode = payload.get("mode")
    if not isinstance(mode, str):
        msg = f"'mode' must be a string, got: {mode!r}"
        raise ProtocolError(msg)
    return ModeEnvelope(mode=mode)


_DECODERS: dict[str, Callable[[JsonObject], Envelope]] = {
    "info": _decode_info,
    "multi-metric": _decode_multi_metric,
    "metric": _decode_metric,
    "mode": _decode_mode,
}


def decode_envelope(raw: str | bytes) -> Envelope:
    """Decode one wire message.

    Args:
        raw: JSON text (or UTF-8 bytes) received from the transport.

    Returns:
        The matching envelope variant, or ``UnrecognizedEnvelope`` when the
        payload is not JSON, not an object, carries an unknown ``type`` or
        has a malformed body. Never raises.
    """
    try:
        msg = json.loads(raw)
    except (ValueError, TypeError) as exc:
        return UnrecognizedEnvelope(reason=f"invalid JSON: {exc}")

    if not isinstance(msg, dict):
        return UnrecognizedEnvelope(reason=f"expected an object, got {type(msg).__name__}")

    kind = msg.get("type")
    decoder = _DECODERS.get(kind) if isinstance(kind, str) else None
    if decoder is None:
        return UnrecognizedEnvelope(reason=f"unknown type: {kind!r}")

    try:
        return decoder(msg)
    except (ProtocolError, ArithmeticError, ValueError, TypeError) as exc:
        return UnrecognizedEnvelope(reason=f"malformed {kind}: {exc}")


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize(envelope: Envelope) -> list[Event]:
    """Map an envelope to the ordered canonical events it produces.

    A ``multi-metric`` batch yields one ``metric`` event per sample, then the
    first sample again for single-series consumers, then one ``nodes`` event
    listing every node the batch named, in order. A node whose sample was
    malformed is still listed, so a store does not prune it.

    Args:
        envelope: A decoded envelope.

    Returns:
        List of ``(event, payload)`` pairs; empty for unrecognized input.
    """
    if isinstance(envelope, MultiMetricEnvelope):
        samples = envelope.samples
        events: list[Event] = [("metric", s) for s in samples]
        if samples:
            events.append(("metric", samples[0]))
        if envelope.nodes:
            events.append(("nodes", list(envelope.nodes)))
        return events

    if isinstance(envelope, MetricEnvelope):
        return [("metric", envelope.sample)]

    if isinstance(envelope, InfoEnvelope):
        return [("nodes", list(envelope.nodes))]

    if isinstance(envelope, ModeEnvelope):
        return [("mode", envelope.mode)]

    logger.debug("Discarding envelope: %s", envelope.reason)
    return []


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode_info(nodes: Iterable[str], mode: str) -> str:
    """Encode the greeting sent to a freshly connected subscriber."""
    return json.dumps({"type": "info", "nodes": list(nodes), "mode": mode})


def encode_multi_metric(samples: Iterable[MetricSample]) -> str:
    """Encode one tick of samples."""
    return json.dumps({"type": "multi-metric", "data": [s.to_wire() for s in samples]})


def encode_ping(ts: int) -> str:
    """Encode a client heartbeat."""
    return json.dumps({"type": "ping", "ts": ts})


def encode_mode_request(mode: str) -> str:
    """Encode a client request to switch the generator scenario."""
    return json.dumps({"mode": mode})


def to_json(obj: Any) -> str:
    """Serialize an arbitrary outbound control object."""
    return json.dumps(obj)
