"""Local streaming transcription provider backed by faster-whisper."""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator
from typing import Any

import faster_whisper
import numpy as np

from ..cancellation import CancellationToken
from ..timers import ScheduledWake
from .audio_convert import float32_from_pcm16
from .cache_utils import get_whisper_cache_dir
from .config import (
    DEFAULT_WHISPER_COMPUTE_TYPE,
    DEFAULT_WHISPER_DEVICE,
    DEFAULT_WHISPER_MODEL,
    WHISPER_IDLE_FLUSH,
    WHISPER_MIN_AUDIO_BYTES,
)
from .exceptions import StreamError, TranscriptionError
from .interfaces import ProviderResult, StreamingTranscriptionClient, TranscriptionStream
from .logging_utils import get_logger
from .models import WordTiming

logger = get_logger(__name__)

_END = object()


def _post_process_text(text: str) -> str:
    """Collapse whitespace and capitalise the first letter."""
    if not text or not isinstance(text, str):
        return ""

    processed = re.sub(r"\s+", " ", text.strip())
    if processed and processed[0].islower():
        processed = processed[0].upper() + processed[1:]
    return processed


class WhisperTranscriptionStream(TranscriptionStream):
    """
    Streaming session emulated on top of batch Whisper transcription.

    Audio is buffered per segment as it arrives. ``end_segment`` transcribes
    that segment's audio on a worker thread and reports it as one final
    result with word timings, tagged with the segment id. Audio whose
    segment is never ended is flushed after ``idle_flush`` seconds without
    new audio, each segment still on its own. Results come out in the order
    segments were finished.
    """

    def __init__(
        self,
        model: Any,
        language: str | None,
        idle_flush: float = WHISPER_IDLE_FLUSH,
    ) -> None:
        self._model = model
        self._language = language
        self._idle_flush = idle_flush
        self._buffers: dict[int | None, bytearray] = {}
        self._results: asyncio.Queue = asyncio.Queue()
        self._flush_wake = ScheduledWake("whisper-flush")
        self._flush_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()
        self._closed = False

    async def send(self, chunk: bytes, segment_id: int | None = None) -> None:
        if self._closed:
            raise StreamError("Whisper stream is closed")
        self._buffers.setdefault(segment_id, bytearray()).extend(chunk)
        self._flush_wake.schedule(self._idle_flush, self._flush_idle)

    async def end_segment(self, segment_id: int) -> None:
        if self._closed:
            return
        audio = self._buffers.pop(segment_id, None)
        if not self._buffers:
            self._flush_wake.cancel()
        if audio:
            self._schedule_flush(bytes(audio), segment_id)

    def _flush_idle(self) -> None:
        buffers, self._buffers = self._buffers, {}
        for segment_id, audio in buffers.items():
            self._schedule_flush(bytes(audio), segment_id)

    def _schedule_flush(self, audio: bytes, segment_id: int | None) -> None:
        if self._closed:
            return
        task = asyncio.create_task(self._flush(audio, segment_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _flush(self, audio: bytes, segment_id: int | None) -> None:
        # The lock hands out turns in arrival order, which keeps results in segment order
        async with self._flush_lock:
            if len(audio) < WHISPER_MIN_AUDIO_BYTES:
                logger.trace(f"Skipping short Whisper buffer ({len(audio)} bytes)")
                return

            loop = asyncio.get_running_loop()
            try:
                result = await loop.run_in_executor(None, self._transcribe, audio)
            except TranscriptionError as e:
                self._results.put_nowait(StreamError(str(e)))
                return

            if result is not None and not self._closed:
                result.segment_id = segment_id
                self._results.put_nowait(result)

    def _transcribe(self, audio: bytes) -> ProviderResult | None:
        samples = float32_from_pcm16(np.frombuffer(audio, dtype=np.int16))
        try:
            segments, _ = self._model.transcribe(
                samples,
                language=self._language,
                word_timestamps=True,
            )
            segments = list(segments)
        except Exception as e:
            logger.error(f"❌ Whisper transcription failed: {e}")
            raise TranscriptionError(f"Whisper transcription failed: {e}") from e

        text = _post_process_text("".join(segment.text for segment in segments))
        if not text:
            logger.debug("🔇 Whisper returned no text")
            return None

        words = [
            WordTiming(word=word.word.strip(), start=word.start, end=word.end)
            for segment in segments
            for word in (getattr(segment, "words", None) or [])
        ]
        logger.debug(f"📝 Whisper: '{text}' ({len(segments)} segments)")
        return ProviderResult(text=text, is_final=True, words=words or None)

    async def results(self) -> AsyncIterator[ProviderResult]:
        while True:
            item = await self._results.get()
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._flush_wake.cancel()
        for task in list(self._pending):
            task.cancel()
        self._results.put_nowait(_END)


class WhisperStreamingClient(StreamingTranscriptionClient):
    """Opens Whisper-backed streaming sessions, loading the model once."""

    def __init__(
        self,
        model_size: str = DEFAULT_WHISPER_MODEL,
        device: str = DEFAULT_WHISPER_DEVICE,
        compute_type: str = DEFAULT_WHISPER_COMPUTE_TYPE,
        idle_flush: float = WHISPER_IDLE_FLUSH,
    ) -> None:
        """
        Initialize the Whisper client.

        Args:
            model_size: Size of Whisper model to use
            device: Device to use for inference ("cpu" or "cuda")
            compute_type: Compute type for inference ("int8", "float16", etc.)
            idle_flush: Seconds without audio before buffered audio is transcribed
        """
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.idle_flush = idle_flush
        self._model: Any | None = None

    def _load_model(self) -> Any:
        logger.debug(
            f"Loading Whisper '{self.model_size}' on {self.device} ({self.compute_type})"
        )
        try:
            model = faster_whisper.WhisperModel(
                self.model_size,
                device=self.device,
                compute_type=self.compute_type,
                download_root=str(get_whisper_cache_dir()),
            )
        except Exception as e:
            logger.error(f"❌ Failed to load Whisper model: {e}")
            raise StreamError(f"Failed to load Whisper model '{self.model_size}': {e}") from e

        logger.info(f"✅ Loaded Whisper model '{self.model_size}'")
        return model

    async def open(
        self,
        language_code: str,
        interim_results: bool,
        token: CancellationToken | None = None,
    ) -> WhisperTranscriptionStream:
        if self._model is None:
            loop = asyncio.get_running_loop()
            self._model = await loop.run_in_executor(None, self._load_model)

        if token is not None:
            token.raise_if_cancelled()

        # Whisper takes bare language codes ("en" rather than "en-US")
        language = language_code.split("-")[0].lower() if language_code else None
        if interim_results:
            logger.debug("Whisper provider reports final results only")
        return WhisperTranscriptionStream(self._model, language, self.idle_flush)
