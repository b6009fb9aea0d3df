"""Voice activity detection and turn segmentation for one audio role."""

from collections import deque
from collections.abc import Callable
from typing import Any

import webrtcvad

from .audio_convert import rms_level
from .config import (
    DEFAULT_SAMPLE_RATE,
    VAD_FRAME_DURATION,
    VAD_SUPPORTED_FRAME_DURATIONS,
    VAD_SUPPORTED_SAMPLE_RATES,
)
from .logging_utils import get_logger
from .models import Role, VadThresholds

logger = get_logger(__name__)

PRE_ROLL_DURATION = 0.3  # seconds of audio kept ahead of the first voiced frame
TRAILING_AUDIO = 0.3  # seconds of silence kept after the last voiced frame


class VoiceActivityDetector:
    """
    Detects speech turns in a continuous stream of 16-bit mono PCM frames.

    Every frame passed to ``consume`` is classified once as voiced or
    unvoiced. A voiced frame opens a tentative region; the region is
    confirmed (``on_speech_start``) once its voiced time reaches the minimum
    speech duration. The region closes after the minimum silence duration:
    a confirmed region delivers its audio through ``on_speech_end``, a
    tentative one is reported through ``on_misfire`` and its audio dropped.
    At most one callback is invoked per consumed frame.

    Timing is taken from frame timestamps and lengths, not the wall clock.
    Instances share no state with each other.
    """

    def __init__(
        self,
        role: Role | None = None,
        sample_rate: int | None = None,
        frame_duration: int | None = None,
        thresholds: VadThresholds | None = None,
    ) -> None:
        """
        Initialize voice activity detector.

        Args:
            role: Role this detector serves, used in log messages
            sample_rate: Audio sample rate in Hz
            frame_duration: webrtcvad analysis window in milliseconds
            thresholds: Turn detection thresholds, defaults if omitted

        Raises:
            ValueError: If sample_rate or frame_duration is not supported by webrtcvad
        """
        self.role = role
        self.sample_rate = sample_rate or DEFAULT_SAMPLE_RATE
        self.frame_duration = frame_duration or VAD_FRAME_DURATION

        if self.sample_rate not in VAD_SUPPORTED_SAMPLE_RATES:
            raise ValueError(
                f"Unsupported sample rate: {self.sample_rate}. "
                f"WebRTC VAD supports {VAD_SUPPORTED_SAMPLE_RATES} Hz"
            )
        if self.frame_duration not in VAD_SUPPORTED_FRAME_DURATIONS:
            raise ValueError(
                f"Unsupported frame duration: {self.frame_duration}. "
                f"WebRTC VAD supports {VAD_SUPPORTED_FRAME_DURATIONS} ms"
            )

        # Analysis window in samples and bytes (2 bytes per int16 sample)
        self.frame_size = int(self.sample_rate * self.frame_duration / 1000)
        self._window_bytes = self.frame_size * 2

        self.vad = webrtcvad.Vad()
        self.thresholds = VadThresholds()
        self.configure(thresholds or VadThresholds())

        self._on_speech_start: Callable[[], None] | None = None
        self._on_speech_end: Callable[[bytes], None] | None = None
        self._on_misfire: Callable[[], None] | None = None

        # Pre-roll holds the most recent unvoiced frames while idle
        self._pre_roll: deque[bytes] = deque()
        self._pre_roll_bytes = 0

        self._region_start: float | None = None
        self._confirmed = False
        self._voiced_duration = 0.0
        self._silence_duration = 0.0
        self._buffer = bytearray()
        self._last_voiced_length = 0

        # Debug tracking
        self._frames_processed = 0
        self._speech_frames = 0
        self._turns = 0
        self._misfires = 0

    @property
    def _label(self) -> str:
        return self.role.value if self.role else "vad"

    def configure(self, thresholds: VadThresholds) -> None:
        """
        Apply new turn detection thresholds.

        Args:
            thresholds: Energy gate, webrtcvad aggressiveness and duration limits
        """
        self.thresholds = thresholds
        self.vad.set_mode(thresholds.aggressiveness)
        logger.debug(
            f"🔊 VAD [{self._label}] configured: energy>={thresholds.energy_threshold}, "
            f"mode={thresholds.aggressiveness}, "
            f"min_speech={thresholds.min_speech_duration}s, "
            f"min_silence={thresholds.min_silence_duration}s"
        )

    def set_callbacks(
        self,
        on_speech_start: Callable[[], None] | None = None,
        on_speech_end: Callable[[bytes], None] | None = None,
        on_misfire: Callable[[], None] | None = None,
    ) -> None:
        """Register turn callbacks. They must not block."""
        self._on_speech_start = on_speech_start
        self._on_speech_end = on_speech_end
        self._on_misfire = on_misfire

    @property
    def in_region(self) -> bool:
        """True while a tentative or confirmed region is open."""
        return self._region_start is not None

    @property
    def in_speech(self) -> bool:
        """True between ``on_speech_start`` and the matching end."""
        return self._confirmed

    def is_speech(self, audio: bytes) -> bool:
        """
        Classify a PCM frame.

        The frame must pass the energy gate and at least one webrtcvad
        window inside it must be voiced. A trailing partial window is padded
        with silence.

        Args:
            audio: 16-bit mono PCM at ``sample_rate``

        Returns:
            True if speech detected, False otherwise
        """
        if not audio:
            return False

        if rms_level(audio) < self.thresholds.energy_threshold:
            return False

        try:
            for offset in range(0, len(audio), self._window_bytes):
                window = audio[offset : offset + self._window_bytes]
                if len(window) < self._window_bytes:
                    window = window + b"\x00" * (self._window_bytes - len(window))
                if self.vad.is_speech(window, self.sample_rate):
                    return True
            return False
        except Exception as e:
            logger.error(f"❌ VAD error processing audio frame: {e}")
            return False

    def consume(self, audio: bytes, timestamp: float) -> None:
        """
        Feed one frame of audio.

        Args:
            audio: 16-bit mono PCM at ``sample_rate``
            timestamp: Capture time of the first sample, in seconds
        """
        if not audio:
            return

        self._frames_processed += 1
        duration = len(audio) / 2 / self.sample_rate
        voiced = self.is_speech(audio)
        if voiced:
            self._speech_frames += 1

        if self._region_start is None:
            if voiced:
                self._open_region(audio, timestamp, duration)
            else:
                self._push_pre_roll(audio)
            return

        self._buffer.extend(audio)

        if voiced:
            self._voiced_duration += duration
            self._silence_duration = 0.0
            self._last_voiced_length = len(self._buffer)
            if not self._confirmed and self._voiced_duration >= self.thresholds.min_speech_duration:
                self._confirm()
                return
        else:
            self._silence_duration += duration
            if self._silence_duration >= self.thresholds.min_silence_duration:
                self._close_region()
                return

        if (
            self._confirmed
            and timestamp + duration - self._region_start >= self.thresholds.max_segment_duration
        ):
            logger.debug(
                f"✂️ VAD [{self._label}] forcing end after "
                f"{self.thresholds.max_segment_duration:.0f}s segment"
            )
            self._close_region(trim=False)

    def reset(self) -> None:
        """Drop any open region without invoking callbacks."""
        if self._region_start is not None:
            logger.debug(f"🔄 VAD [{self._label}] reset with open region")
        self._clear_region()
        self._pre_roll.clear()
        self._pre_roll_bytes = 0

    def get_debug_stats(self) -> dict[str, Any]:
        """
        Get debug statistics about detection.

        Returns:
            Dictionary with debug information
        """
        return {
            "role": self._label,
            "frames_processed": self._frames_processed,
            "speech_frames": self._speech_frames,
            "turns": self._turns,
            "misfires": self._misfires,
            "in_region": self.in_region,
            "in_speech": self.in_speech,
        }

    def _open_region(self, audio: bytes, timestamp: float, duration: float) -> None:
        self._region_start = timestamp
        self._confirmed = False
        self._voiced_duration = duration
        self._silence_duration = 0.0
        self._buffer = bytearray(b"".join(self._pre_roll))
        self._buffer.extend(audio)
        self._last_voiced_length = len(self._buffer)
        self._pre_roll.clear()
        self._pre_roll_bytes = 0

        logger.trace(f"🗣️ VAD [{self._label}] tentative region at {timestamp:.2f}s")

        if self._voiced_duration >= self.thresholds.min_speech_duration:
            self._confirm()

    def _confirm(self) -> None:
        self._confirmed = True
        logger.debug(f"🗣️ VAD [{self._label}] speech start")
        self._invoke(self._on_speech_start)

    def _close_region(self, trim: bool = True) -> None:
        if self._confirmed:
            if trim:
                tail = int(TRAILING_AUDIO * self.sample_rate) * 2
                audio = bytes(self._buffer[: self._last_voiced_length + tail])
            else:
                audio = bytes(self._buffer)
            self._turns += 1
            self._clear_region()
            logger.debug(
                f"🔇 VAD [{self._label}] speech end "
                f"({len(audio) / 2 / self.sample_rate:.2f}s of audio)"
            )
            self._invoke(self._on_speech_end, audio)
        else:
            self._misfires += 1
            self._clear_region()
            logger.debug(f"💨 VAD [{self._label}] misfire suppressed")
            self._invoke(self._on_misfire)

    def _clear_region(self) -> None:
        self._region_start = None
        self._confirmed = False
        self._voiced_duration = 0.0
        self._silence_duration = 0.0
        self._buffer = bytearray()
        self._last_voiced_length = 0

    def _push_pre_roll(self, audio: bytes) -> None:
        limit = int(PRE_ROLL_DURATION * self.sample_rate) * 2
        self._pre_roll.append(audio)
        self._pre_roll_bytes += len(audio)
        while self._pre_roll and self._pre_roll_bytes - len(self._pre_roll[0]) >= limit:
            self._pre_roll_bytes -= len(self._pre_roll.popleft())

    def _invoke(self, callback: Callable | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"❌ Error in VAD [{self._label}] callback: {e}")
