"""Wall-clock helpers shared by the generator and the client."""

from __future__ import annotations

import time


def now_ms() -> int:
    """Return the wall clock in integer epoch milliseconds."""
    return int(time.time() * 1000)
