"""Decides when reply suggestions are generated and delivers them."""

import asyncio
import logging
import re
import time
from collections import deque
from collections.abc import Callable
from typing import Any

from ..cancellation import CancellationToken
from ..events import ErrorCategory, ErrorEvent, EventChannel, SuggestionReady
from ..speech.models import Role, TranscriptEvent
from ..timers import ScheduledWake
from .config import FILLER_WORDS
from .interfaces import SuggestionGenerator
from .models import (
    ErrorKind,
    GenerationResult,
    PartialSuggestion,
    SuggestionConfig,
    SuggestionPrompt,
    SuggestionRequest,
    SuggestionStatus,
)

logger = logging.getLogger(__name__)

_FILLER_PATTERN = re.compile(
    r"^(?:(?:" + "|".join(FILLER_WORDS) + r")\b[\s,.!?;:-]*)+",
    re.IGNORECASE,
)

_ERROR_CATEGORIES = {
    ErrorKind.AUTH: ErrorCategory.CREDENTIALS_INVALID,
    ErrorKind.RATE_LIMIT: ErrorCategory.RATE_LIMITED,
}


def clean_transcript(text: str) -> str:
    """Strip whitespace and leading filler words ("um, so, ...")."""
    return _FILLER_PATTERN.sub("", text.strip()).strip()


class ContinuousSuggestionCoordinator:
    """
    Turns transcript events into suggestion generations.

    Only the trigger role (the other party by default) produces full
    suggestions. A final transcript generates immediately; interim
    transcripts restart a per-role debounce wake, and when it fires the
    latest interim text is used. At most one generation runs per role; a
    newer trigger cancels the older one and its late result is discarded.

    Partial prefetch keeps at most one pending request per context id.
    Completed prefetches stay available until retrieved or until
    ``partial_result_ttl`` passes.
    """

    def __init__(
        self,
        generator: SuggestionGenerator,
        events: EventChannel | None = None,
        config: SuggestionConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            generator: Language model collaborator
            events: Channel receiving SuggestionReady and ErrorEvent messages
            config: Timing and threshold settings
            clock: Monotonic time source
        """
        self._generator = generator
        self._events = events
        self.config = config or SuggestionConfig()
        self._clock = clock

        self._wakes = {role: ScheduledWake(f"debounce-{role.value}") for role in Role}
        self._latest_interim: dict[Role, str | None] = {role: None for role in Role}
        self._in_flight: dict[Role, tuple[CancellationToken, asyncio.Task]] = {}
        self._partials: dict[str, SuggestionRequest] = {}
        self._history: deque[str] = deque(maxlen=self.config.history_turns)
        self._closed = False

        self.generation_count = 0
        self.last_result: GenerationResult | None = None

    def has_pending_wake(self, role: Role) -> bool:
        return self._wakes[role].pending

    def is_generating(self, role: Role) -> bool:
        entry = self._in_flight.get(role)
        return entry is not None and not entry[1].done()

    def handle_transcript(self, event: TranscriptEvent) -> None:
        """
        React to one transcript event. Never blocks.

        Args:
            event: Role-tagged transcript from the streaming bridge
        """
        if self._closed:
            return

        text = event.text.strip()
        if not text:
            return

        if event.role is not self.config.trigger_role:
            if event.is_final:
                self._remember(event.role, text)
            return

        if event.is_final:
            self._wakes[event.role].cancel()
            self._latest_interim[event.role] = None
            self._start_generation(event.role, text)
        else:
            self._latest_interim[event.role] = text
            self._wakes[event.role].schedule(
                self.config.debounce_delay, self._on_debounce, event.role
            )

    def cancel_pending(self, role: Role) -> bool:
        """
        Cancel the debounce wake of ``role``.

        Called when the other role starts speaking so an interrupted turn
        does not fire a stale suggestion.

        Returns:
            True if a wake was pending
        """
        cancelled = self._wakes[role].cancel()
        self._latest_interim[role] = None
        if cancelled:
            logger.debug(f"⏹️ Debounce for {role.value} cancelled by interruption")
        return cancelled

    def cancel_timers(self) -> None:
        """Cancel every debounce wake."""
        for role in Role:
            self._wakes[role].cancel()
            self._latest_interim[role] = None

    def begin_partial_suggestion_generation(
        self,
        partial_text: str,
        context_id: str,
        context: dict[str, Any] | None = None,
    ) -> bool:
        """
        Start prefetching a suggestion for text that is still being spoken.

        Ignored when the raw text is shorter than ``min_partial_length``
        or a generation for ``context_id`` is already pending.

        Args:
            partial_text: Interim transcript
            context_id: Key used to retrieve the result later
            context: Extra context forwarded to the generator

        Returns:
            True if a generation was started
        """
        if self._closed:
            return False

        self._evict_expired()

        partial_text = partial_text or ""
        if len(partial_text) < self.config.min_partial_length:
            logger.debug(f"Partial text too short for prefetch ({len(partial_text)} chars)")
            return False

        cleaned = clean_transcript(partial_text)

        existing = self._partials.get(context_id)
        if existing is not None and existing.status is SuggestionStatus.PENDING:
            logger.debug(f"Partial generation for '{context_id}' already pending")
            return False

        request = SuggestionRequest(
            context_id=context_id,
            role=self.config.trigger_role,
            transcript=cleaned,
            created_at=self._clock(),
            token=CancellationToken(f"partial-{context_id}"),
        )
        prompt = SuggestionPrompt(
            transcript=cleaned,
            history=list(self._history),
            quick=True,
            context=dict(context or {}),
        )
        request.task = asyncio.create_task(self._run_partial(request, prompt))
        self._partials[context_id] = request
        logger.debug(f"🔮 Partial generation started for '{context_id}'")
        return True

    async def get_partial_suggestion(self, context_id: str) -> PartialSuggestion:
        """
        Wait a bounded time for a prefetched suggestion.

        The entry for ``context_id`` is removed however the wait ends. On
        timeout the generation keeps running in the background and its
        result is discarded.

        Args:
            context_id: Key passed to ``begin_partial_suggestion_generation``

        Returns:
            PartialSuggestion with ``is_complete`` True only on success
        """
        request = self._partials.get(context_id)
        if request is None or request.task is None:
            return PartialSuggestion(suggestion=None, is_complete=False)

        result: GenerationResult | None = None
        try:
            result = await asyncio.wait_for(
                asyncio.shield(request.task), timeout=self.config.partial_timeout
            )
        except TimeoutError:
            request.status = SuggestionStatus.TIMED_OUT
            logger.warning(
                f"⏱️ Partial suggestion '{context_id}' not ready after "
                f"{self.config.partial_timeout}s"
            )
        except asyncio.CancelledError:
            if not request.task.cancelled():
                raise
        finally:
            if self._partials.get(context_id) is request:
                del self._partials[context_id]

        if result is not None and result.success:
            return PartialSuggestion(suggestion=result.text, is_complete=True)
        return PartialSuggestion(suggestion=None, is_complete=False)

    def cancel_partial_generation(self, context_id: str) -> bool:
        """Cancel and forget the prefetch for ``context_id``."""
        request = self._partials.pop(context_id, None)
        if request is None:
            return False
        if request.token is not None:
            request.token.cancel("partial cancelled")
        if request.task is not None and not request.task.done():
            request.task.cancel()
        return True

    def pending_partial_ids(self) -> list[str]:
        return list(self._partials)

    async def shutdown(self) -> None:
        """Cancel timers and every running generation, then wait for them."""
        self._closed = True
        self.cancel_timers()

        tasks = []
        for token, task in self._in_flight.values():
            token.cancel("shutdown")
            task.cancel()
            tasks.append(task)
        self._in_flight.clear()

        for request in self._partials.values():
            if request.token is not None:
                request.token.cancel("shutdown")
            if request.task is not None:
                request.task.cancel()
                tasks.append(request.task)
        self._partials.clear()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Suggestion coordinator shut down")

    def _on_debounce(self, role: Role) -> None:
        text = self._latest_interim[role]
        self._latest_interim[role] = None
        if text and not self._closed:
            logger.debug(f"⏰ Debounce elapsed for {role.value}, generating from interim text")
            self._start_generation(role, text)

    def _start_generation(self, role: Role, transcript: str) -> None:
        previous = self._in_flight.pop(role, None)
        if previous is not None:
            token, task = previous
            if not task.done():
                logger.debug(f"♻️ Superseding in-flight suggestion for {role.value}")
            token.cancel("superseded")
            task.cancel()

        prompt = SuggestionPrompt(
            transcript=clean_transcript(transcript) or transcript,
            history=list(self._history),
        )
        self._remember(role, transcript)

        token = CancellationToken(f"suggestion-{role.value}")
        task = asyncio.create_task(self._run_generation(role, transcript, prompt, token))
        self._in_flight[role] = (token, task)
        self.generation_count += 1
        logger.info(f"💡 Generating suggestion for {role.value}: '{transcript}'")

    async def _run_generation(
        self,
        role: Role,
        transcript: str,
        prompt: SuggestionPrompt,
        token: CancellationToken,
    ) -> GenerationResult | None:
        try:
            result = await self._generator.generate(prompt, token)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Suggestion generator raised: {e}")
            result = GenerationResult.failure(str(e), ErrorKind.PROVIDER)
        finally:
            entry = self._in_flight.get(role)
            if entry is not None and entry[0] is token:
                del self._in_flight[role]

        if token.cancelled or result.kind is ErrorKind.CANCELLED:
            logger.debug(f"Discarding superseded suggestion for {role.value}")
            return None

        self.last_result = result
        if result.success:
            self._publish(SuggestionReady(text=result.text, role=role, transcript=transcript))
        else:
            self._publish_failure(result)
        return result

    async def _run_partial(
        self, request: SuggestionRequest, prompt: SuggestionPrompt
    ) -> GenerationResult:
        try:
            result = await self._generator.generate(prompt, request.token)
        except asyncio.CancelledError:
            request.status = SuggestionStatus.CANCELLED
            raise
        except Exception as e:
            logger.error(f"Partial generator raised: {e}")
            result = GenerationResult.failure(str(e), ErrorKind.PROVIDER)

        request.result = result
        request.completed_at = self._clock()
        if result.success:
            request.status = SuggestionStatus.COMPLETE
        elif result.kind is ErrorKind.CANCELLED:
            request.status = SuggestionStatus.CANCELLED
        else:
            request.status = SuggestionStatus.ERROR
            if result.kind in _ERROR_CATEGORIES:
                self._publish_failure(result)
        return result

    def _publish_failure(self, result: GenerationResult) -> None:
        category = _ERROR_CATEGORIES.get(result.kind, ErrorCategory.SUGGESTION)
        if category is ErrorCategory.CREDENTIALS_INVALID:
            message = f"Credentials invalid: {result.error}"
        elif category is ErrorCategory.RATE_LIMITED:
            message = f"Rate limited: {result.error}"
        else:
            message = f"Suggestion failed: {result.error}"
        logger.warning(f"⚠️ {message}")
        self._publish(ErrorEvent(message=message, category=category))

    def _publish(self, event: SuggestionReady | ErrorEvent) -> None:
        if self._events is not None:
            self._events.publish(event)

    def _remember(self, role: Role, text: str) -> None:
        speaker = "Them" if role is self.config.trigger_role else "Me"
        self._history.append(f"{speaker}: {text}")

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [
            context_id
            for context_id, request in self._partials.items()
            if request.completed_at is not None
            and now - request.completed_at >= self.config.partial_result_ttl
        ]
        for context_id in expired:
            logger.debug(f"🗑️ Evicting unretrieved partial '{context_id}'")
            del self._partials[context_id]
