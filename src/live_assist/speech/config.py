"""Configuration constants for capture, voice activity detection and streaming."""

# Audio Configuration
DEFAULT_SAMPLE_RATE = 16000  # Hz, format required by the transcription collaborator
DEFAULT_CHANNELS = 1  # mono
DEFAULT_CHUNK_SIZE = 1600  # samples per device read (100ms at 16kHz)
PCM16_MAX = 32767  # int16 full scale
PCM16_MIN_SCALE = 32768  # magnitude of int16 minimum

# Voice Activity Detection
VAD_AGGRESSIVENESS = 2  # 0-3, higher = more aggressive filtering
VAD_FRAME_DURATION = 30  # milliseconds
VAD_SUPPORTED_SAMPLE_RATES = [8000, 16000, 32000, 48000]  # Hz
VAD_SUPPORTED_FRAME_DURATIONS = [10, 20, 30]  # milliseconds
VAD_ENERGY_THRESHOLD = 0.01  # RMS level (0-1) below which a frame is silence

# Turn Detection
MIN_SILENCE_DURATION = 2.0  # seconds of silence that end a turn
MIN_SPEECH_DURATION = 0.3  # seconds - shorter regions are misfires
MAX_SEGMENT_DURATION = 30.0  # seconds - force end of very long turns

# Streaming Transcription
DEFAULT_LANGUAGE = "en-US"
STREAM_CHUNK_BYTES = 3200  # bytes per forwarded chunk (100ms of 16kHz int16)
RESTART_WINDOW = 10.0  # seconds - a second failure inside this window is terminal
STREAM_OPEN_TIMEOUT = 10.0  # seconds

# Local Whisper Provider
DEFAULT_WHISPER_MODEL = "small"
DEFAULT_WHISPER_DEVICE = "cpu"
DEFAULT_WHISPER_COMPUTE_TYPE = "int8"
WHISPER_IDLE_FLUSH = 0.6  # seconds without new audio before buffered audio is transcribed
WHISPER_MIN_AUDIO_BYTES = 3200  # ignore buffers shorter than 100ms
