"""Data models for capture, turn detection and streaming transcription."""

from dataclasses import dataclass, field
from enum import Enum

from .config import (
    DEFAULT_LANGUAGE,
    MAX_SEGMENT_DURATION,
    MIN_SILENCE_DURATION,
    MIN_SPEECH_DURATION,
    VAD_AGGRESSIVENESS,
    VAD_ENERGY_THRESHOLD,
)


class Role(str, Enum):
    """Audio source a frame, segment or transcript belongs to."""

    CANDIDATE = "candidate"  # local microphone
    OTHER_PARTY = "other_party"  # loopback / system audio

    @property
    def other(self) -> "Role":
        """The opposite role."""
        return Role.OTHER_PARTY if self is Role.CANDIDATE else Role.CANDIDATE


class StreamState(str, Enum):
    """Lifecycle state of the streaming transcription session."""

    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    PAUSED = "paused"
    TERMINATED = "terminated"


@dataclass
class AudioFrame:
    """A block of captured PCM audio tagged with its role."""

    role: Role
    data: bytes
    sample_rate: int
    timestamp: float
    channels: int = 1
    sample_format: str = "int16"  # "int16" or "float32"

    @property
    def duration(self) -> float:
        """Duration of the frame in seconds."""
        bytes_per_sample = 4 if self.sample_format == "float32" else 2
        samples = len(self.data) // (bytes_per_sample * max(self.channels, 1))
        return samples / self.sample_rate if self.sample_rate else 0.0


@dataclass
class SpeechSegment:
    """One turn of speech by a single role."""

    role: Role
    start_time: float
    end_time: float | None = None
    audio: bytes = b""

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def duration(self) -> float:
        if self.end_time is None:
            return 0.0
        return self.end_time - self.start_time


@dataclass
class WordTiming:
    """Word-level timing reported by the transcription provider."""

    word: str
    start: float
    end: float


@dataclass
class TranscriptEvent:
    """Transcript text produced by the streaming bridge."""

    role: Role
    text: str
    is_final: bool
    timestamp: float
    words: list[WordTiming] | None = None


@dataclass
class VadThresholds:
    """Thresholds for turn detection. Durations are in seconds."""

    energy_threshold: float = VAD_ENERGY_THRESHOLD
    aggressiveness: int = VAD_AGGRESSIVENESS
    min_silence_duration: float = MIN_SILENCE_DURATION
    min_speech_duration: float = MIN_SPEECH_DURATION
    max_segment_duration: float = MAX_SEGMENT_DURATION

    def __post_init__(self) -> None:
        if not 0 <= self.aggressiveness <= 3:
            raise ValueError(f"VAD aggressiveness must be 0-3, got {self.aggressiveness}")
        if self.min_silence_duration <= 0:
            raise ValueError("Minimum silence duration must be positive")
        if self.min_speech_duration < 0:
            raise ValueError("Minimum speech duration must not be negative")


@dataclass
class StreamConfig:
    """Configuration reused when the stream is opened or restarted."""

    language_code: str = DEFAULT_LANGUAGE
    interim_results: bool = True
    routed_roles: frozenset[Role] = field(
        default_factory=lambda: frozenset({Role.CANDIDATE, Role.OTHER_PARTY})
    )


@dataclass
class StartResult:
    """Outcome of a bridge start request."""

    started: bool
    error: str | None = None
