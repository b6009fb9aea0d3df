"""Typed events emitted to the host and the channel that carries them."""

import asyncio
from dataclasses import dataclass
from enum import Enum

from .speech.logging_utils import get_logger
from .speech.models import Role, WordTiming

logger = get_logger(__name__)


class ErrorCategory(str, Enum):
    """Category attached to error events so the host can react."""

    DEVICE = "device"
    STREAM = "stream"
    CREDENTIALS_INVALID = "credentials_invalid"
    RATE_LIMITED = "rate_limited"
    SUGGESTION = "suggestion"


@dataclass
class TranscriptUpdate:
    """Transcript text for one role."""

    role: Role
    text: str
    is_final: bool
    words: list[WordTiming] | None = None


@dataclass
class SuggestionReady:
    """A generated response suggestion."""

    text: str
    role: Role
    transcript: str


@dataclass
class ErrorEvent:
    """A failure surfaced to the host."""

    message: str
    category: ErrorCategory
    terminal: bool = False


@dataclass
class StatusEvent:
    """A state change of the conversation session or stream."""

    state: str
    detail: str | None = None


Event = TranscriptUpdate | SuggestionReady | ErrorEvent | StatusEvent

_CLOSED = object()


class Subscription:
    """Async iterator over events published after subscribing."""

    def __init__(self, channel: "EventChannel") -> None:
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def _deliver(self, item: object) -> None:
        if not self._closed:
            self._queue.put_nowait(item)

    async def get(self) -> Event | None:
        """Next event, or None once the channel or subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            self._closed = True
            return None
        return item

    def get_nowait(self) -> Event | None:
        """Next queued event without waiting, or None if nothing is queued."""
        if self._queue.empty():
            return None
        item = self._queue.get_nowait()
        if item is _CLOSED:
            self._closed = True
            return None
        return item

    def close(self) -> None:
        self._channel.unsubscribe(self)
        self._deliver(_CLOSED)
        self._closed = True

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Event:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventChannel:
    """
    Fan-out channel for session events.

    ``publish`` never blocks and is safe to call from frame callbacks; every
    subscriber has its own unbounded queue.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscription] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> Subscription:
        subscription = Subscription(self)
        if self._closed:
            subscription._deliver(_CLOSED)
        else:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def publish(self, event: Event) -> None:
        if self._closed:
            logger.trace(f"Dropping {type(event).__name__} published after close")
            return
        for subscription in list(self._subscribers):
            subscription._deliver(event)

    def close(self) -> None:
        """End every subscription. Further publishes are dropped."""
        if self._closed:
            return
        self._closed = True
        for subscription in list(self._subscribers):
            subscription._deliver(_CLOSED)
        self._subscribers.clear()
