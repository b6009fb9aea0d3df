"""Tests for the Whisper-backed streaming provider."""

import asyncio
from unittest.mock import Mock, patch

import pytest

from live_assist.cancellation import CancellationToken, OperationCancelledError
from live_assist.speech.exceptions import StreamError
from live_assist.speech.transcriber import (
    WhisperStreamingClient,
    WhisperTranscriptionStream,
    _post_process_text,
)

# Patch target for faster_whisper.WhisperModel
WHISPER_MODEL_PATCH = "live_assist.speech.transcriber.faster_whisper.WhisperModel"
CACHE_DIR_PATCH = "live_assist.speech.transcriber.get_whisper_cache_dir"

SECOND_OF_AUDIO = b"\x10\x00" * 16000


def whisper_segment(text: str, words: list[tuple[str, float, float]] | None = None) -> Mock:
    segment = Mock()
    segment.text = text
    segment.words = [Mock(word=w, start=s, end=e) for w, s, e in words or []]
    return segment


async def collect(stream: WhisperTranscriptionStream) -> list:
    return [result async for result in stream.results()]


@pytest.mark.unit
class TestPostProcessText:
    """Test cases for transcript clean-up."""

    def test_whitespace_is_collapsed(self) -> None:
        """Test runs of whitespace become single spaces."""
        assert _post_process_text("  so   what  do you\tthink ") == "So what do you think"

    def test_empty_text(self) -> None:
        """Test empty input returns an empty string."""
        assert _post_process_text("") == ""
        assert _post_process_text("   ") == ""


@pytest.mark.unit
@pytest.mark.asyncio
class TestWhisperTranscriptionStream:
    """Test cases for the emulated streaming session."""

    @pytest.fixture
    def model(self) -> Mock:
        model = Mock()
        segments = [
            whisper_segment(" tell me about", [(" tell", 0.0, 0.2)]),
            whisper_segment(" your last role", [(" role", 0.9, 1.1)]),
        ]
        model.transcribe.return_value = (iter(segments), Mock())
        return model

    async def test_idle_buffer_is_transcribed_as_final(self, model: Mock) -> None:
        """Test buffered audio is flushed after the idle delay as one final result."""
        stream = WhisperTranscriptionStream(model, "en", idle_flush=0.01)

        await stream.send(SECOND_OF_AUDIO[:16000])
        await stream.send(SECOND_OF_AUDIO[16000:])
        result = await asyncio.wait_for(anext(stream.results()), 1.0)

        assert result.is_final is True
        assert result.text == "Tell me about your last role"
        assert [w.word for w in result.words] == ["tell", "role"]
        model.transcribe.assert_called_once()
        samples = model.transcribe.call_args[0][0]
        assert len(samples) == 16000
        assert model.transcribe.call_args.kwargs["language"] == "en"
        assert model.transcribe.call_args.kwargs["word_timestamps"] is True
        await stream.close()

    async def test_ended_segment_is_transcribed_at_once(self, model: Mock) -> None:
        """Test end_segment transcribes without waiting and tags the result."""
        stream = WhisperTranscriptionStream(model, "en", idle_flush=5.0)

        await stream.send(SECOND_OF_AUDIO, segment_id=7)
        await stream.end_segment(7)
        result = await asyncio.wait_for(anext(stream.results()), 1.0)

        assert result.segment_id == 7
        assert result.text == "Tell me about your last role"
        await stream.close()

    async def test_segments_are_transcribed_separately(self, model: Mock) -> None:
        """Test back-to-back segments are never merged into one result."""
        model.transcribe.side_effect = [
            (iter([whisper_segment(" why did you apply")]), Mock()),
            (iter([whisper_segment(" okay")]), Mock()),
        ]
        stream = WhisperTranscriptionStream(model, "en", idle_flush=5.0)

        await stream.send(SECOND_OF_AUDIO, segment_id=1)
        await stream.end_segment(1)
        await stream.send(SECOND_OF_AUDIO[:8000], segment_id=2)
        await stream.end_segment(2)
        results = stream.results()
        first = await asyncio.wait_for(anext(results), 1.0)
        second = await asyncio.wait_for(anext(results), 1.0)

        assert (first.segment_id, first.text) == (1, "Why did you apply")
        assert (second.segment_id, second.text) == (2, "Okay")
        assert [len(c.args[0]) for c in model.transcribe.call_args_list] == [16000, 4000]
        await stream.close()

    async def test_idle_flush_keeps_segments_apart(self, model: Mock) -> None:
        """Test segments left open are flushed one result per segment."""
        model.transcribe.side_effect = [
            (iter([whisper_segment(" first")]), Mock()),
            (iter([whisper_segment(" second")]), Mock()),
        ]
        stream = WhisperTranscriptionStream(model, "en", idle_flush=0.01)

        await stream.send(SECOND_OF_AUDIO, segment_id=1)
        await stream.send(SECOND_OF_AUDIO, segment_id=2)
        results = stream.results()
        first = await asyncio.wait_for(anext(results), 1.0)
        second = await asyncio.wait_for(anext(results), 1.0)

        assert [first.segment_id, second.segment_id] == [1, 2]
        assert model.transcribe.call_count == 2
        await stream.close()

    async def test_short_buffer_is_skipped(self, model: Mock) -> None:
        """Test buffers below the minimum length are not transcribed."""
        stream = WhisperTranscriptionStream(model, "en", idle_flush=0.01)

        await stream.send(b"\x00" * 100)
        await asyncio.sleep(0.05)
        await stream.close()

        assert await collect(stream) == []
        model.transcribe.assert_not_called()

    async def test_empty_transcript_produces_no_result(self, model: Mock) -> None:
        """Test Whisper returning no text yields nothing."""
        model.transcribe.return_value = (iter([]), Mock())
        stream = WhisperTranscriptionStream(model, "en", idle_flush=0.01)

        await stream.send(SECOND_OF_AUDIO)
        await asyncio.sleep(0.1)
        await stream.close()

        assert await collect(stream) == []

    async def test_transcription_failure_breaks_stream(self, model: Mock) -> None:
        """Test a Whisper failure surfaces as a StreamError from results()."""
        model.transcribe.side_effect = RuntimeError("CUDA out of memory")
        stream = WhisperTranscriptionStream(model, "en", idle_flush=0.01)

        await stream.send(SECOND_OF_AUDIO)

        with pytest.raises(StreamError, match="Whisper transcription failed"):
            await asyncio.wait_for(collect(stream), 1.0)

    async def test_close_ends_results_and_rejects_audio(self, model: Mock) -> None:
        """Test close ends the result iterator and further sends fail."""
        stream = WhisperTranscriptionStream(model, "en", idle_flush=5.0)
        await stream.send(SECOND_OF_AUDIO)

        await stream.close()
        await stream.close()

        assert await collect(stream) == []
        with pytest.raises(StreamError):
            await stream.send(SECOND_OF_AUDIO)
        model.transcribe.assert_not_called()


@pytest.mark.unit
class TestWhisperStreamingClient:
    """Test cases for WhisperStreamingClient."""

    def test_initialization_default(self) -> None:
        """Test the client defaults to the small CPU model."""
        client = WhisperStreamingClient()

        assert client.model_size == "small"
        assert client.device == "cpu"
        assert client.compute_type == "int8"

    @pytest.mark.asyncio
    @patch(CACHE_DIR_PATCH)
    @patch(WHISPER_MODEL_PATCH)
    async def test_open_loads_model_once(
        self, mock_whisper_model: Mock, mock_cache_dir: Mock, tmp_path
    ) -> None:
        """Test the model is loaded on first open and reused afterwards."""
        mock_cache_dir.return_value = tmp_path
        client = WhisperStreamingClient(model_size="base")

        first = await client.open("en-US", interim_results=True)
        second = await client.open("de-DE", interim_results=False)

        mock_whisper_model.assert_called_once_with(
            "base", device="cpu", compute_type="int8", download_root=str(tmp_path)
        )
        assert first._language == "en"
        assert second._language == "de"
        await first.close()
        await second.close()

    @pytest.mark.asyncio
    @patch(CACHE_DIR_PATCH)
    @patch(WHISPER_MODEL_PATCH)
    async def test_open_model_failure_raises_stream_error(
        self, mock_whisper_model: Mock, mock_cache_dir: Mock, tmp_path
    ) -> None:
        """Test a model load failure is reported as StreamError."""
        mock_cache_dir.return_value = tmp_path
        mock_whisper_model.side_effect = Exception("Model not found")
        client = WhisperStreamingClient()

        with pytest.raises(StreamError, match="Failed to load Whisper model"):
            await client.open("en-US", interim_results=True)

    @pytest.mark.asyncio
    @patch(CACHE_DIR_PATCH)
    @patch(WHISPER_MODEL_PATCH)
    async def test_open_respects_cancelled_token(
        self, mock_whisper_model: Mock, mock_cache_dir: Mock, tmp_path
    ) -> None:
        """Test open stops once its token has been cancelled."""
        mock_cache_dir.return_value = tmp_path
        token = CancellationToken("open")
        token.cancel("stop requested")
        client = WhisperStreamingClient()

        with pytest.raises(OperationCancelledError):
            await client.open("en-US", interim_results=True, token=token)
