"""Cooperative cancellation for network-bound operations."""

import asyncio

from .speech.logging_utils import get_logger

logger = get_logger(__name__)


class OperationCancelledError(Exception):
    """Raised when work is attempted under a cancelled token."""

    pass


class CancellationToken:
    """
    One-shot cancellation signal shared between an operation and its owner.

    The owner calls ``cancel()`` when the operation is superseded or the
    session stops. The operation checks ``cancelled`` before applying
    deferred results, or awaits ``wait()`` to race against cancellation.
    Tasks attached with ``link_task`` are cancelled together with the token.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._cancelled = False
        self._reason: str | None = None
        self._event = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> bool:
        """
        Cancel the token and any linked tasks.

        Args:
            reason: Short description recorded for logging

        Returns:
            True if this call cancelled the token, False if it already was
        """
        if self._cancelled:
            return False

        self._cancelled = True
        self._reason = reason
        self._event.set()

        for task in list(self._tasks):
            if not task.done():
                task.cancel()
        self._tasks.clear()

        logger.trace(f"🛑 Token '{self.name}' cancelled: {reason}")
        return True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError(self._reason or "cancelled")

    def link_task(self, task: asyncio.Task) -> asyncio.Task:
        """Cancel ``task`` when this token is cancelled."""
        if self._cancelled:
            task.cancel()
            return task

        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()
