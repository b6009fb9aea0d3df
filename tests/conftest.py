"""Shared fakes for the transcription and suggestion collaborators."""

import asyncio
from collections.abc import AsyncIterator, Callable

import pytest

from live_assist.cancellation import CancellationToken
from live_assist.speech.interfaces import (
    ProviderResult,
    StreamingTranscriptionClient,
    TranscriptionStream,
)
from live_assist.suggestions.interfaces import SuggestionGenerator
from live_assist.suggestions.models import GenerationResult, SuggestionPrompt


class FakeStream(TranscriptionStream):
    """In-memory streaming session driven by the test."""

    def __init__(self) -> None:
        self.sent: list[bytes] = []
        self.segment_ids: list[int | None] = []
        self.ended: list[int] = []
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    async def send(self, chunk: bytes, segment_id: int | None = None) -> None:
        self.sent.append(chunk)
        self.segment_ids.append(segment_id)
        # Network writes yield to the loop
        await asyncio.sleep(0)

    async def end_segment(self, segment_id: int) -> None:
        self.ended.append(segment_id)

    async def results(self) -> AsyncIterator[ProviderResult]:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(None)

    def push(self, text: str, is_final: bool = True, segment_id: int | None = None) -> None:
        self._queue.put_nowait(ProviderResult(text=text, is_final=is_final, segment_id=segment_id))

    def end(self) -> None:
        """Provider closes the stream."""
        self._queue.put_nowait(None)

    def fail(self, error: Exception) -> None:
        """Provider breaks the stream."""
        self._queue.put_nowait(error)


class FakeClient(StreamingTranscriptionClient):
    """Transcription client handing out FakeStreams."""

    def __init__(self) -> None:
        self.streams: list[FakeStream] = []
        self.languages: list[str] = []
        self.open_errors: list[Exception] = []
        self.open_delay = 0.0
        self.tokens: list[CancellationToken | None] = []

    @property
    def open_calls(self) -> int:
        return len(self.languages)

    @property
    def current(self) -> FakeStream:
        return self.streams[-1]

    async def open(
        self,
        language_code: str,
        interim_results: bool,
        token: CancellationToken | None = None,
    ) -> FakeStream:
        self.languages.append(language_code)
        self.tokens.append(token)
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.open_errors:
            raise self.open_errors.pop(0)
        stream = FakeStream()
        self.streams.append(stream)
        return stream


class FakeGenerator(SuggestionGenerator):
    """Suggestion generator with scripted results and optional latency."""

    def __init__(self) -> None:
        self.prompts: list[SuggestionPrompt] = []
        self.tokens: list[CancellationToken | None] = []
        self.results: list[GenerationResult | Exception] = []
        self.delay = 0.0

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def generate(
        self, prompt: SuggestionPrompt, token: CancellationToken | None = None
    ) -> GenerationResult:
        self.prompts.append(prompt)
        self.tokens.append(token)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return GenerationResult(success=True, text=f"Reply to: {prompt.transcript}")


@pytest.fixture
def fake_client() -> FakeClient:
    """Create a fake transcription client."""
    return FakeClient()


@pytest.fixture
def fake_generator() -> FakeGenerator:
    """Create a fake suggestion generator."""
    return FakeGenerator()


@pytest.fixture
def wait_until() -> Callable:
    """Poll a predicate until it holds or the timeout expires."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(0.005)
        return True

    return _wait_until
