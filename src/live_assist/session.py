"""Per-conversation session wiring capture, transcription and suggestions."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from .events import (
    ErrorCategory,
    ErrorEvent,
    EventChannel,
    StatusEvent,
    Subscription,
    TranscriptUpdate,
)
from .speech.audio_capture import AudioCapture
from .speech.capture_session import AudioCaptureSession
from .speech.config import DEFAULT_CHUNK_SIZE, DEFAULT_LANGUAGE, RESTART_WINDOW
from .speech.exceptions import DeviceError
from .speech.interfaces import StreamingTranscriptionClient
from .speech.logging_utils import get_logger
from .speech.models import AudioFrame, Role, SpeechSegment, StreamConfig, VadThresholds
from .speech.streaming import StreamingTranscriptionBridge
from .suggestions.coordinator import ContinuousSuggestionCoordinator
from .suggestions.interfaces import SuggestionGenerator
from .suggestions.models import SuggestionConfig

logger = get_logger(__name__)

CaptureFactory = Callable[..., AudioCapture]


@dataclass
class SessionConfig:
    """Settings for one conversation. Durations are in seconds."""

    language_code: str = DEFAULT_LANGUAGE
    microphone_device: int | None = None  # None = default input
    loopback_device: int | None = None  # None = default input
    capture_sample_rate: int | None = None  # None = device default
    capture_chunk_size: int = DEFAULT_CHUNK_SIZE
    interim_results: bool = True
    routed_roles: frozenset[Role] = field(
        default_factory=lambda: frozenset({Role.CANDIDATE, Role.OTHER_PARTY})
    )
    restart_window: float = RESTART_WINDOW
    vad: VadThresholds = field(default_factory=VadThresholds)
    suggestions: SuggestionConfig = field(default_factory=SuggestionConfig)

    def stream_config(self) -> StreamConfig:
        return StreamConfig(
            language_code=self.language_code,
            interim_results=self.interim_results,
            routed_roles=self.routed_roles,
        )


class ConversationSession:
    """
    One live conversation.

    Holds its own capture session, transcription bridge and suggestion
    coordinator; collaborators are injected. Everything the host needs to
    observe is published on ``events``. A session runs once: after
    ``stop`` a new session must be created.
    """

    def __init__(
        self,
        transcription_client: StreamingTranscriptionClient,
        generator: SuggestionGenerator,
        config: SessionConfig | None = None,
        capture_factory: CaptureFactory | None = None,
        events: EventChannel | None = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            transcription_client: Streaming transcription provider
            generator: Suggestion generator
            config: Session settings
            capture_factory: Builds device handles, defaults to AudioCapture
            events: Channel for host events, created if omitted
        """
        self.config = config or SessionConfig()
        self.events = events or EventChannel()
        self._capture_factory = capture_factory or AudioCapture

        self.coordinator = ContinuousSuggestionCoordinator(
            generator, self.events, self.config.suggestions
        )
        self.bridge = StreamingTranscriptionBridge(
            transcription_client, self.events, restart_window=self.config.restart_window
        )
        self.capture = AudioCaptureSession(
            self.config.vad,
            segment_sink=self._on_segment,
            on_interrupt=self._on_interrupt,
        )

        self._devices: dict[Role, AudioCapture] = {}
        self._transcripts: Subscription | None = None
        self._pump_task: asyncio.Task | None = None
        self._forward_tasks: set[asyncio.Task] = set()
        self._running = False
        self._finished = False
        self._status = "idle"

    @property
    def running(self) -> bool:
        return self._running

    @property
    def status(self) -> str:
        return self._status

    async def start(self, open_devices: bool = True) -> bool:
        """
        Start capturing, transcribing and suggesting.

        Args:
            open_devices: Open the microphone and loopback devices; pass False
                when the host feeds frames through ``feed``

        Returns:
            True if the session started, False if it was already running,
            already finished, or the transcription stream could not start

        Raises:
            DeviceError: If a capture device is unavailable
        """
        if self._running:
            logger.warning("Session is already running")
            return False
        if self._finished:
            logger.warning("Session already stopped; create a new session")
            return False

        self._set_status("starting")

        if open_devices:
            try:
                self._open_devices()
            except DeviceError as e:
                logger.error(f"❌ Capture device error: {e}")
                self._close_devices()
                self.events.publish(
                    ErrorEvent(message=str(e), category=ErrorCategory.DEVICE, terminal=True)
                )
                self._set_status("stopped")
                raise

        result = await self.bridge.start(self.config.stream_config())
        if not result.started:
            logger.error(f"❌ Transcription did not start: {result.error}")
            self._close_devices()
            self._set_status("stopped")
            return False

        self._transcripts = self.bridge.subscribe_transcripts()
        self._pump_task = asyncio.create_task(self._pump(self._transcripts))
        self.capture.activate()
        self._running = True
        self._set_status("recording")
        logger.info("✅ Conversation session started")
        return True

    def feed(self, frame: AudioFrame) -> None:
        """Push one captured frame. Dropped unless the session is running."""
        self.capture.consume(frame)

    def pause(self) -> bool:
        if not self._running or not self.bridge.pause():
            return False
        self._set_status("paused")
        return True

    def resume(self) -> bool:
        if not self._running or not self.bridge.resume():
            return False
        self._set_status("recording")
        return True

    async def set_language(self, language_code: str) -> bool:
        """
        Change the transcription language.

        A running stream is reopened with the new language. A stream that
        has already terminated is not reopened.

        Returns:
            True if the language is in effect
        """
        self.config = replace(self.config, language_code=language_code)
        if not self._running:
            return True

        logger.info(f"🌐 Switching transcription language to {language_code}")
        result = await self.bridge.reconfigure(self.config.stream_config())
        if not result.started:
            logger.error(f"❌ Failed to reopen transcription: {result.error}")
        return result.started

    def select_devices(
        self, microphone_device: int | None = None, loopback_device: int | None = None
    ) -> None:
        """Choose capture devices for the next ``start``."""
        self.config = replace(
            self.config,
            microphone_device=microphone_device,
            loopback_device=loopback_device,
        )

    async def stop(self) -> None:
        """
        Tear the session down. Idempotent.

        Order: debounce wakes, detectors, transcription stream, devices,
        then remaining suggestion work and the transcript pump.
        """
        if self._finished:
            return

        self._running = False
        self._finished = True
        self._set_status("stopping")

        self.coordinator.cancel_timers()
        self.capture.shutdown()
        await self.bridge.stop()
        self._close_devices()

        for task in list(self._forward_tasks):
            task.cancel()
        if self._forward_tasks:
            await asyncio.gather(*self._forward_tasks, return_exceptions=True)

        await self.coordinator.shutdown()

        if self._transcripts is not None:
            self._transcripts.close()
        if self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
        self._pump_task = None

        self._set_status("stopped")
        logger.info("🛑 Conversation session stopped")

    async def __aenter__(self) -> "ConversationSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    def get_debug_stats(self) -> dict[str, Any]:
        return {
            "status": self._status,
            "stream_state": self.bridge.state.value,
            "stream_restarts": self.bridge.restart_count,
            "capture": self.capture.get_debug_stats(),
            "devices": {role.value: d.get_debug_stats() for role, d in self._devices.items()},
            "generations": self.coordinator.generation_count,
        }

    def _open_devices(self) -> None:
        device_indexes = {
            Role.CANDIDATE: self.config.microphone_device,
            Role.OTHER_PARTY: self.config.loopback_device,
        }
        for role, device_index in device_indexes.items():
            capture = self._capture_factory(
                role,
                device_index=device_index,
                sample_rate=self.config.capture_sample_rate,
                chunk_size=self.config.capture_chunk_size,
            )
            capture.start_capture(self.feed)
            self._devices[role] = capture

    def _close_devices(self) -> None:
        for role, capture in list(self._devices.items()):
            try:
                capture.stop_capture()
            except Exception as e:
                logger.error(f"Error stopping {role.value} capture: {e}")
        self._devices.clear()

    def _on_segment(self, segment: SpeechSegment) -> None:
        if not self._running:
            return
        task = asyncio.create_task(self.bridge.send_audio(segment.audio, segment.role))
        self._forward_tasks.add(task)
        task.add_done_callback(self._forward_tasks.discard)

    def _on_interrupt(self, interrupted: Role) -> None:
        self.coordinator.cancel_pending(interrupted)

    async def _pump(self, transcripts: Subscription) -> None:
        async for event in transcripts:
            self.events.publish(
                TranscriptUpdate(
                    role=event.role,
                    text=event.text,
                    is_final=event.is_final,
                    words=event.words,
                )
            )
            self.coordinator.handle_transcript(event)

    def _set_status(self, status: str) -> None:
        self._status = status
        self.events.publish(StatusEvent(state=status))
