"""Single-slot scheduled wake used for per-role debounce timers."""

import asyncio
from collections.abc import Callable
from typing import Any

from .speech.logging_utils import get_logger

logger = get_logger(__name__)


class ScheduledWake:
    """
    Holds at most one pending timer.

    ``schedule`` replaces whatever was pending, so there is never more than
    one live timer per wake. ``cancel`` is idempotent.
    """

    def __init__(self, name: str = "wake") -> None:
        self.name = name
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, delay: float, callback: Callable[..., Any], *args: Any) -> None:
        """
        Fire ``callback(*args)`` after ``delay`` seconds, replacing any pending wake.

        Must be called from inside a running event loop.
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, callback, args)
        logger.trace(f"⏰ Wake '{self.name}' scheduled in {delay:.2f}s")

    def cancel(self) -> bool:
        """
        Cancel the pending wake.

        Returns:
            True if a wake was pending, False otherwise
        """
        if self._handle is None:
            return False

        self._handle.cancel()
        self._handle = None
        logger.trace(f"⏰ Wake '{self.name}' cancelled")
        return True

    def _fire(self, callback: Callable[..., Any], args: tuple) -> None:
        self._handle = None
        logger.trace(f"⏰ Wake '{self.name}' fired")
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"❌ Error in wake '{self.name}' callback: {e}")
