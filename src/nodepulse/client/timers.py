"""Cancellable timers behind a small scheduler seam.

The connection manager never touches the event loop clock directly: it asks
a ``Scheduler`` for one-shot callbacks. Production code uses the running
asyncio loop; tests substitute a manually advanced scheduler.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable


class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled (idempotently)."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Source of one-shot delayed callbacks."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run *callback* after *delay* seconds on the running loop.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        return asyncio.get_running_loop().call_later(delay, callback)


class PeriodicTimer:
    """Invoke a callback every *interval* seconds until stopped.

    The next tick is armed before the callback runs, so a callback that
    calls ``stop()`` ends the cycle cleanly.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        interval: float,
        callback: Callable[[], None],
    ) -> None:
        """Initialize a stopped timer.

        Args:
            scheduler: Scheduler providing one-shot callbacks.
            interval: Seconds between invocations. Must be positive.
            callback: Function invoked on every tick.

        Raises:
            ValueError: If interval is not positive.
        """
        if interval <= 0:
            msg = f"interval must be positive, got {interval}"
            raise ValueError(msg)
        self._scheduler = scheduler
        self._interval = interval
        self._callback = callback
        self._handle: TimerHandle | None = None

    @property
    def interval(self) -> float:
        """Return the tick interval in seconds."""
        return self._interval

    @property
    def running(self) -> bool:
        """Return True while a tick is armed."""
        return self._handle is not None

    def start(self) -> None:
        """Start ticking, restarting the cycle if already running."""
        self.stop()
        self._arm()

    def stop(self) -> None:
        """Cancel the pending tick, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self) -> None:
        self._handle = self._scheduler.call_later(self._interval, self._fire)

    def _fire(self) -> None:
        self._arm()
        self._callback()
