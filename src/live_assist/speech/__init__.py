"""Audio capture, turn detection and streaming transcription."""

from .exceptions import (
    DeviceError,
    DeviceNotFoundError,
    DevicePermissionError,
    LiveAssistError,
    StreamError,
    TranscriptionError,
)
from .models import (
    AudioFrame,
    Role,
    SpeechSegment,
    StartResult,
    StreamConfig,
    StreamState,
    TranscriptEvent,
    VadThresholds,
    WordTiming,
)

__all__ = [
    "AudioFrame",
    "DeviceError",
    "DeviceNotFoundError",
    "DevicePermissionError",
    "LiveAssistError",
    "Role",
    "SpeechSegment",
    "StartResult",
    "StreamConfig",
    "StreamError",
    "StreamState",
    "TranscriptEvent",
    "TranscriptionError",
    "VadThresholds",
    "WordTiming",
]
