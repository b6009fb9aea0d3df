"""Boundary conversion of captured audio to mono 16kHz linear PCM."""

import numpy as np

from .config import DEFAULT_SAMPLE_RATE, PCM16_MAX, PCM16_MIN_SCALE
from .models import AudioFrame


def pcm16_from_float32(samples: np.ndarray) -> np.ndarray:
    """
    Convert float samples in [-1, 1] to int16, clamping out-of-range values.

    Negative values scale by 32768 and positive values by 32767 so both
    ends of the range map onto the int16 extremes.
    """
    clipped = np.clip(samples.astype(np.float32), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * PCM16_MIN_SCALE, clipped * PCM16_MAX)
    return scaled.astype(np.int16)


def float32_from_pcm16(samples: np.ndarray) -> np.ndarray:
    """Convert int16 samples to float32 in [-1, 1)."""
    return samples.astype(np.float32) / PCM16_MIN_SCALE


def downmix_to_mono(samples: np.ndarray, channels: int) -> np.ndarray:
    """Average interleaved channels into a single channel."""
    if channels <= 1:
        return samples
    usable = len(samples) - (len(samples) % channels)
    return samples[:usable].reshape(-1, channels).mean(axis=1).astype(samples.dtype)


def resample_linear(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """
    Resample with linear interpolation.

    Args:
        samples: Mono samples
        source_rate: Rate of ``samples`` in Hz
        target_rate: Desired rate in Hz

    Returns:
        Resampled samples with the input dtype
    """
    if source_rate == target_rate or len(samples) == 0:
        return samples

    new_length = max(1, int(round(len(samples) * target_rate / source_rate)))
    old_indices = np.linspace(0, len(samples) - 1, new_length)
    resampled = np.interp(old_indices, np.arange(len(samples)), samples.astype(np.float64))

    if np.issubdtype(samples.dtype, np.integer):
        return np.round(resampled).astype(samples.dtype)
    return resampled.astype(samples.dtype)


def frame_to_pcm16(frame: AudioFrame, target_rate: int = DEFAULT_SAMPLE_RATE) -> bytes:
    """
    Convert a captured frame to mono int16 PCM at ``target_rate``.

    Args:
        frame: Captured frame in int16 or float32 interleaved format
        target_rate: Output sample rate in Hz

    Returns:
        Little-endian int16 PCM bytes

    Raises:
        ValueError: If the frame's sample format is unknown
    """
    if frame.sample_format == "float32":
        samples = pcm16_from_float32(np.frombuffer(frame.data, dtype=np.float32))
    elif frame.sample_format == "int16":
        usable = len(frame.data) - (len(frame.data) % 2)
        samples = np.frombuffer(frame.data[:usable], dtype=np.int16)
    else:
        raise ValueError(f"Unsupported sample format: {frame.sample_format}")

    samples = downmix_to_mono(samples, frame.channels)
    samples = resample_linear(samples, frame.sample_rate, target_rate)
    return samples.astype("<i2").tobytes()


def rms_level(pcm: bytes) -> float:
    """RMS level of int16 PCM normalised to 0.0-1.0."""
    if len(pcm) < 2:
        return 0.0
    samples = np.frombuffer(pcm[: len(pcm) - (len(pcm) % 2)], dtype=np.int16).astype(np.float64)
    rms = float(np.sqrt(np.mean(samples**2)))
    return min(rms / PCM16_MAX, 1.0)
