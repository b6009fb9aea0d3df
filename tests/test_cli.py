"""Tests for the LiveAssistCLI console runner."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from live_assist.events import (
    ErrorCategory,
    ErrorEvent,
    EventChannel,
    StatusEvent,
    SuggestionReady,
    TranscriptUpdate,
)
from live_assist.main import LiveAssistCLI, main
from live_assist.speech.exceptions import DeviceNotFoundError
from live_assist.speech.models import Role


def mock_session() -> Mock:
    session = Mock()
    session.events = EventChannel()
    session.start = AsyncMock(return_value=True)
    session.stop = AsyncMock()
    return session


@pytest.mark.unit
class TestFormatEvent:
    """Test cases for console rendering of events."""

    @pytest.fixture
    def cli(self) -> LiveAssistCLI:
        return LiveAssistCLI(session=mock_session())

    def test_final_transcripts_show_speaker(self, cli: LiveAssistCLI) -> None:
        """Test final transcripts are labelled by role."""
        them = TranscriptUpdate(role=Role.OTHER_PARTY, text="Any questions?", is_final=True)
        you = TranscriptUpdate(role=Role.CANDIDATE, text="Yes, one.", is_final=True)

        assert cli.format_event(them) == "[Them] Any questions?"
        assert cli.format_event(you) == "[You] Yes, one."

    def test_interim_transcripts_are_hidden(self, cli: LiveAssistCLI) -> None:
        """Test interim transcripts are not printed."""
        event = TranscriptUpdate(role=Role.OTHER_PARTY, text="Any", is_final=False)

        assert cli.format_event(event) is None

    def test_suggestions_are_numbered(self, cli: LiveAssistCLI) -> None:
        """Test suggestions carry a running number."""
        event = SuggestionReady(text="Ask about the team.", role=Role.OTHER_PARTY, transcript="?")

        assert cli.format_event(event) == "💡 Suggestion #1: Ask about the team."
        assert cli.format_event(event) == "💡 Suggestion #2: Ask about the team."

    def test_errors_show_severity(self, cli: LiveAssistCLI) -> None:
        """Test terminal and recoverable errors are marked differently."""
        terminal = ErrorEvent(message="stream lost", category=ErrorCategory.STREAM, terminal=True)
        warning = ErrorEvent(message="Rate limited", category=ErrorCategory.RATE_LIMITED)

        assert cli.format_event(terminal) == "❌ stream lost"
        assert cli.format_event(warning) == "⚠️ Rate limited"

    def test_stream_status_is_hidden(self, cli: LiveAssistCLI) -> None:
        """Test internal stream transitions are skipped but session states are shown."""
        assert cli.format_event(StatusEvent(state="stream_active")) is None
        assert cli.format_event(StatusEvent(state="paused")) == "● paused"


@pytest.mark.unit
@pytest.mark.asyncio
class TestLiveAssistCLIRun:
    """Test cases for running a session from the console."""

    async def test_start_failure(self) -> None:
        """Test a session that cannot start is reported and stopped."""
        session = mock_session()
        session.start.return_value = False
        cli = LiveAssistCLI(session=session)

        with patch("builtins.print") as mock_print:
            assert await cli.run() is False

        mock_print.assert_any_call("❌ Could not start the transcription stream.")
        session.stop.assert_awaited_once()

    async def test_device_error(self) -> None:
        """Test device errors are printed and the session is stopped."""
        session = mock_session()
        session.start.side_effect = DeviceNotFoundError("No capture device found for other_party")
        cli = LiveAssistCLI(session=session)

        with patch("builtins.print") as mock_print:
            assert await cli.run() is False

        mock_print.assert_any_call(
            "❌ Audio device error: No capture device found for other_party"
        )
        session.stop.assert_awaited_once()

    async def test_prints_events_until_terminal_error(self) -> None:
        """Test events are printed and a terminal error ends the run."""
        session = mock_session()

        async def start() -> bool:
            session.events.publish(
                TranscriptUpdate(role=Role.OTHER_PARTY, text="Hello", is_final=True)
            )
            session.events.publish(
                ErrorEvent(message="stream lost", category=ErrorCategory.STREAM, terminal=True)
            )
            return True

        session.start.side_effect = start
        cli = LiveAssistCLI(session=session)

        with patch("builtins.print") as mock_print:
            assert await cli.run() is True

        mock_print.assert_any_call("[Them] Hello")
        mock_print.assert_any_call("❌ stream lost")
        session.stop.assert_awaited_once()
        assert cli._running is False

    async def test_main_runs_built_session(self) -> None:
        """Test main builds a session from arguments and runs it."""
        session = mock_session()
        session.start.return_value = False

        with patch("live_assist.main.build_session", return_value=session) as mock_build:
            with patch("builtins.print"):
                result = await main(Mock())

        mock_build.assert_called_once()
        assert result is False
