"""Per-role turn capture on top of voice activity detection."""

from collections.abc import Callable
from functools import partial
from typing import Any

from .audio_convert import frame_to_pcm16
from .config import DEFAULT_SAMPLE_RATE
from .logging_utils import get_logger
from .models import AudioFrame, Role, SpeechSegment, VadThresholds
from .vad import VoiceActivityDetector

logger = get_logger(__name__)


class AudioCaptureSession:
    """
    Bridges VAD turn events to recorded speech segments for both roles.

    Owns one VoiceActivityDetector and one SpeechSegment slot per role.
    Speech starting on one role calls ``on_interrupt`` with the other role so
    its pending debounce can be cancelled. Finished segments are handed to
    ``segment_sink``, which must not block.
    """

    def __init__(
        self,
        thresholds: VadThresholds | None = None,
        segment_sink: Callable[[SpeechSegment], None] | None = None,
        on_interrupt: Callable[[Role], None] | None = None,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
    ) -> None:
        """
        Initialize the capture session.

        Args:
            thresholds: Turn detection thresholds applied to both roles
            segment_sink: Receives each closed SpeechSegment
            on_interrupt: Called with the interrupted role when the other role starts speaking
            sample_rate: Rate frames are converted to before detection
        """
        self.sample_rate = sample_rate
        self._segment_sink = segment_sink
        self._on_interrupt = on_interrupt
        self._active = False

        self._vads: dict[Role, VoiceActivityDetector] = {}
        for role in Role:
            vad = VoiceActivityDetector(role=role, sample_rate=sample_rate, thresholds=thresholds)
            vad.set_callbacks(
                on_speech_start=partial(self._handle_speech_start, role),
                on_speech_end=partial(self._handle_speech_end, role),
                on_misfire=partial(self._handle_misfire, role),
            )
            self._vads[role] = vad

        self._segments: dict[Role, SpeechSegment | None] = {role: None for role in Role}
        self._frame_start: dict[Role, float] = {role: 0.0 for role in Role}
        self._frame_end: dict[Role, float] = {role: 0.0 for role in Role}

        self._frames_dropped = 0
        self._segments_delivered = 0
        self._misfires = 0

    @property
    def active(self) -> bool:
        return self._active

    def activate(self) -> None:
        self._active = True
        logger.debug("🎙️ Capture session active")

    def deactivate(self) -> None:
        self._active = False
        logger.debug("🎙️ Capture session inactive")

    def configure(self, thresholds: VadThresholds) -> None:
        """Apply thresholds to both detectors."""
        for vad in self._vads.values():
            vad.configure(thresholds)

    def vad(self, role: Role) -> VoiceActivityDetector:
        return self._vads[role]

    def open_segment(self, role: Role) -> SpeechSegment | None:
        """The currently open segment for ``role``, if any."""
        return self._segments[role]

    def consume(self, frame: AudioFrame) -> None:
        """
        Feed one captured frame.

        Frames arriving while the session is inactive are dropped.

        Args:
            frame: Role-tagged frame in any supported format
        """
        if not self._active:
            self._frames_dropped += 1
            logger.trace(f"Dropping {frame.role.value} frame, session inactive")
            return

        try:
            pcm = frame_to_pcm16(frame, self.sample_rate)
        except ValueError as e:
            logger.warning(f"⚠️ Dropping {frame.role.value} frame: {e}")
            return

        self._frame_start[frame.role] = frame.timestamp
        self._frame_end[frame.role] = frame.timestamp + frame.duration
        self._vads[frame.role].consume(pcm, frame.timestamp)

    def reset_detectors(self) -> None:
        """Reset both detectors and discard open segments."""
        for vad in self._vads.values():
            vad.reset()
        for role in Role:
            if self._segments[role] is not None:
                logger.debug(f"🗑️ Discarding open {role.value} segment")
            self._segments[role] = None

    def shutdown(self) -> None:
        self.deactivate()
        self.reset_detectors()

    def get_debug_stats(self) -> dict[str, Any]:
        return {
            "active": self._active,
            "frames_dropped": self._frames_dropped,
            "segments_delivered": self._segments_delivered,
            "misfires": self._misfires,
            "vad": {role.value: vad.get_debug_stats() for role, vad in self._vads.items()},
        }

    def _handle_speech_start(self, role: Role) -> None:
        if self._segments[role] is None:
            self._segments[role] = SpeechSegment(role=role, start_time=self._frame_start[role])
            logger.debug(f"🗣️ {role.value} turn started at {self._frame_start[role]:.2f}s")

        if self._on_interrupt is not None:
            try:
                self._on_interrupt(role.other)
            except Exception as e:
                logger.error(f"❌ Error in interrupt handler: {e}")

    def _handle_speech_end(self, role: Role, audio: bytes) -> None:
        segment = self._segments[role]
        self._segments[role] = None
        if segment is None:
            logger.warning(f"⚠️ {role.value} speech end without an open segment")
            return

        segment.end_time = self._frame_end[role]
        segment.audio = audio
        self._segments_delivered += 1
        logger.debug(f"🔇 {role.value} turn ended ({segment.duration:.2f}s)")

        if self._segment_sink is not None:
            try:
                self._segment_sink(segment)
            except Exception as e:
                logger.error(f"❌ Error in segment sink: {e}")

    def _handle_misfire(self, role: Role) -> None:
        self._misfires += 1
        logger.trace(f"💨 {role.value} misfire, nothing forwarded")
