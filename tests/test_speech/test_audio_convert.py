"""Tests for PCM boundary conversion."""

import numpy as np
import pytest

from live_assist.speech.audio_convert import (
    downmix_to_mono,
    frame_to_pcm16,
    pcm16_from_float32,
    resample_linear,
    rms_level,
)
from live_assist.speech.models import AudioFrame, Role


@pytest.mark.unit
class TestAudioConvert:
    """Test cases for audio conversion helpers."""

    def test_float_to_pcm16_scales_and_clamps(self) -> None:
        """Test full-scale floats map to int16 extremes and overflow is clamped."""
        samples = np.array([-1.5, -1.0, 0.0, 0.5, 1.0, 2.0], dtype=np.float32)

        result = pcm16_from_float32(samples)

        assert result.tolist() == [-32768, -32768, 0, 16383, 32767, 32767]

    def test_downmix_averages_channels(self) -> None:
        """Test interleaved stereo is averaged to mono."""
        stereo = np.array([100, 300, -200, 200], dtype=np.int16)

        assert downmix_to_mono(stereo, 2).tolist() == [200, 0]

    def test_downmix_mono_is_unchanged(self) -> None:
        """Test mono input passes through."""
        mono = np.array([1, 2, 3], dtype=np.int16)

        assert downmix_to_mono(mono, 1) is mono

    def test_resample_changes_length(self) -> None:
        """Test 48kHz audio resampled to 16kHz has a third of the samples."""
        samples = np.arange(4800, dtype=np.int16)

        result = resample_linear(samples, 48000, 16000)

        assert len(result) == 1600
        assert result.dtype == np.int16
        assert result[0] == 0
        assert result[-1] == 4799

    def test_resample_same_rate_is_identity(self) -> None:
        """Test no resampling happens when rates match."""
        samples = np.arange(10, dtype=np.int16)

        assert resample_linear(samples, 16000, 16000) is samples

    def test_frame_to_pcm16_int16_passthrough(self) -> None:
        """Test mono 16kHz int16 frames are returned unchanged."""
        data = np.array([1, -1, 1000, -1000], dtype=np.int16).tobytes()
        frame = AudioFrame(role=Role.CANDIDATE, data=data, sample_rate=16000, timestamp=0.0)

        assert frame_to_pcm16(frame) == data

    def test_frame_to_pcm16_rejects_unknown_format(self) -> None:
        """Test unsupported sample formats raise ValueError."""
        frame = AudioFrame(
            role=Role.CANDIDATE,
            data=b"\x00" * 8,
            sample_rate=16000,
            timestamp=0.0,
            sample_format="int24",
        )

        with pytest.raises(ValueError, match="Unsupported sample format"):
            frame_to_pcm16(frame)

    def test_rms_level_range(self) -> None:
        """Test RMS is 0 for silence and close to 1 for full-scale square waves."""
        silence = np.zeros(160, dtype=np.int16).tobytes()
        square = np.array([32767, -32767] * 80, dtype=np.int16).tobytes()

        assert rms_level(silence) == 0.0
        assert rms_level(square) == pytest.approx(1.0, abs=1e-3)
        assert rms_level(b"") == 0.0

    def test_frame_duration(self) -> None:
        """Test frame duration accounts for format and channels."""
        frame = AudioFrame(
            role=Role.OTHER_PARTY,
            data=b"\x00" * (4800 * 2 * 4),
            sample_rate=48000,
            timestamp=0.0,
            channels=2,
            sample_format="float32",
        )

        assert frame.duration == pytest.approx(0.1)
