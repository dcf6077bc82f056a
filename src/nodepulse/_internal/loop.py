"""Event loop selection for the generator and client entry points."""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING

from nodepulse._internal.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("loop")


def event_loop_factory() -> Callable[[], asyncio.AbstractEventLoop]:
    """Return a factory for uvloop event loops if available.

    Falls back to the default asyncio event loop on Windows or if uvloop
    is not installed.
    """
    if sys.platform == "win32":
        return asyncio.new_event_loop

    try:
        import uvloop
    except ImportError:
        logger.debug("uvloop not available, using default asyncio event loop")
        return asyncio.new_event_loop

    logger.debug("Using uvloop event loop")
    return uvloop.new_event_loop
