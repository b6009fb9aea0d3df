"""Command-line interface for the live conversation assistant."""

import argparse
import asyncio
import logging
import sys

from .events import ErrorEvent, Event, StatusEvent, SuggestionReady, TranscriptUpdate
from .session import ConversationSession, SessionConfig
from .speech.audio_capture import list_input_devices
from .speech.cache_utils import clear_models_cache
from .speech.config import DEFAULT_LANGUAGE, DEFAULT_WHISPER_MODEL
from .speech.exceptions import DeviceError
from .speech.logging_utils import configure_logging
from .speech.models import Role
from .speech.transcriber import WhisperStreamingClient
from .suggestions.config import (
    DEFAULT_DEBOUNCE_DELAY,
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OLLAMA_MODEL,
)
from .suggestions.llm_generator import OllamaSuggestionGenerator
from .suggestions.models import SuggestionConfig

ROLE_LABELS = {Role.CANDIDATE: "You", Role.OTHER_PARTY: "Them"}


class LiveAssistCLI:
    """Runs a conversation session and prints its events."""

    def __init__(self, session: ConversationSession) -> None:
        self._session = session
        self._running = False
        self._suggestion_count = 0

    def format_event(self, event: Event) -> str | None:
        """
        Render an event as one line of console output.

        Interim transcripts and internal stream transitions are not shown.

        Returns:
            The line to print, or None to skip the event
        """
        if isinstance(event, TranscriptUpdate):
            if not event.is_final:
                return None
            return f"[{ROLE_LABELS[event.role]}] {event.text}"
        if isinstance(event, SuggestionReady):
            self._suggestion_count += 1
            return f"💡 Suggestion #{self._suggestion_count}: {event.text}"
        if isinstance(event, ErrorEvent):
            prefix = "❌" if event.terminal else "⚠️"
            return f"{prefix} {event.message}"
        if isinstance(event, StatusEvent):
            if event.state.startswith("stream_"):
                return None
            return f"● {event.state}"
        return None

    async def run(self) -> bool:
        """
        Start the session and print events until interrupted.

        Returns:
            True if the session ran, False if it failed to start
        """
        events = self._session.events.subscribe()
        try:
            print("🎤 Starting conversation assistant...")
            if not await self._session.start():
                print("❌ Could not start the transcription stream.")
                return False

            self._running = True
            print("✅ Listening. Press Ctrl+C to stop.")

            async for event in events:
                line = self.format_event(event)
                if line:
                    print(line)
                if isinstance(event, ErrorEvent) and event.terminal:
                    break
            return True

        except DeviceError as e:
            print(f"❌ Audio device error: {e}")
            return False
        except (KeyboardInterrupt, asyncio.CancelledError):
            print("\n👋 Goodbye!")
            return True
        finally:
            events.close()
            await self._session.stop()
            self._running = False


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="Live Assist - real-time transcription and reply suggestions for conversations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  live-assist --list-devices                       # Show capture devices
  live-assist --mic-device 2 --loopback-device 5   # Pick devices by index
  live-assist --language de-DE                     # Transcribe German
  live-assist --ollama-model llama3.1:8b           # Use a larger model
  live-assist --debounce 2.0 --verbose             # Faster suggestions, debug logs

Controls:
  Ctrl+C    - Stop and exit gracefully

The loopback device is the source of the other party's audio, e.g. a
PulseAudio monitor device. Suggestions are generated when they stop talking.
        """,
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List capture devices and exit",
    )
    parser.add_argument(
        "--mic-device",
        type=int,
        default=None,
        metavar="INDEX",
        help="Device index for your microphone (default: system default input)",
    )
    parser.add_argument(
        "--loopback-device",
        type=int,
        default=None,
        metavar="INDEX",
        help="Device index for the other party's audio (default: system default input)",
    )
    parser.add_argument(
        "--language",
        default=DEFAULT_LANGUAGE,
        help=f"Transcription language code (default: {DEFAULT_LANGUAGE})",
    )
    parser.add_argument(
        "--whisper-model",
        default=DEFAULT_WHISPER_MODEL,
        help=f"faster-whisper model size (default: {DEFAULT_WHISPER_MODEL})",
    )
    parser.add_argument(
        "--force-cpu",
        action="store_true",
        help="Run Whisper on the CPU even if CUDA is available",
    )
    parser.add_argument(
        "--ollama-model",
        default=DEFAULT_OLLAMA_MODEL,
        help=f"Ollama model for suggestions (default: {DEFAULT_OLLAMA_MODEL})",
    )
    parser.add_argument(
        "--ollama-url",
        default=DEFAULT_OLLAMA_BASE_URL,
        help=f"Ollama service URL (default: {DEFAULT_OLLAMA_BASE_URL})",
    )
    parser.add_argument(
        "--debounce",
        type=float,
        default=DEFAULT_DEBOUNCE_DELAY,
        metavar="SECONDS",
        help=f"Quiet time before suggesting from interim text (default: {DEFAULT_DEBOUNCE_DELAY})",
    )
    parser.add_argument(
        "--reset-model-cache",
        action="store_true",
        help="Clear downloaded Whisper models and exit",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging and debug information",
    )
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable trace logging (most verbose, includes per-frame detail)",
    )

    return parser


def print_devices() -> bool:
    """
    Print capture devices.

    Returns:
        True if devices could be listed
    """
    try:
        devices = list_input_devices()
    except DeviceError as e:
        print(f"❌ {e}")
        return False

    if not devices:
        print("⚠️ No input devices found")
        return True

    print("🎤 Capture devices:")
    for device in devices:
        print(
            f"  [{device['index']}] {device['name']} "
            f"({device['channels']}ch, {device['sample_rate']}Hz)"
        )
    return True


def handle_arguments(args: argparse.Namespace) -> tuple[bool, bool]:
    """
    Handle parsed command-line arguments.

    Args:
        args: Parsed arguments from argparse

    Returns:
        Tuple of (success, should_continue):
        - success: True if all operations succeeded, False if any failed
        - should_continue: True if a session should be started
    """
    configure_logging(verbose=args.verbose, trace=args.trace)

    if args.debounce <= 0:
        print("❌ --debounce must be positive")
        return False, False

    if args.list_devices:
        return print_devices(), False

    if args.reset_model_cache:
        if clear_models_cache():
            print("✅ Model cache cleared successfully.")
            return True, False
        print("❌ Failed to clear model cache.")
        return False, False

    return True, True


def build_session(args: argparse.Namespace) -> ConversationSession:
    """Build a session from parsed arguments."""
    config = SessionConfig(
        language_code=args.language,
        microphone_device=args.mic_device,
        loopback_device=args.loopback_device,
        suggestions=SuggestionConfig(debounce_delay=args.debounce),
    )
    transcription_client = WhisperStreamingClient(
        model_size=args.whisper_model,
        device="cpu" if args.force_cpu else "auto",
        compute_type="int8" if args.force_cpu else "default",
    )
    generator = OllamaSuggestionGenerator(model=args.ollama_model, base_url=args.ollama_url)
    return ConversationSession(transcription_client, generator, config)


async def main(args: argparse.Namespace) -> bool:
    """Main entry point for the CLI application."""
    cli = LiveAssistCLI(build_session(args))
    return await cli.run()


def cli_entry_with_args() -> None:
    """CLI entry point with argument parsing."""
    parser = create_argument_parser()

    try:
        args = parser.parse_args()

        success, should_continue = handle_arguments(args)

        if not success:
            sys.exit(1)

        if not should_continue:
            sys.exit(0)

        if not asyncio.run(main(args)):
            sys.exit(1)

    except KeyboardInterrupt:
        pass  # Graceful shutdown
    except SystemExit:
        raise
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli_entry_with_args()
