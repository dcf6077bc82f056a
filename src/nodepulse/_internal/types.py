"""Shared type aliases for NodePulse."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

# Bus handler: receives the event payload (None for lifecycle events).
Handler = Callable[[Any], None]

# Wall clock returning integer milliseconds since the epoch.
Clock = Callable[[], int]

# One canonical event produced by the normalizer: (event name, payload).
Event = tuple[str, Any]

# JSON object as decoded from the wire.
JsonObject = dict[str, Any]
