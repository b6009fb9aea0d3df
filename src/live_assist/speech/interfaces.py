"""Abstract interfaces for the streaming transcription provider."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass

from ..cancellation import CancellationToken
from .models import WordTiming


@dataclass
class ProviderResult:
    """One recognition result as reported by the provider."""

    text: str
    is_final: bool
    words: list[WordTiming] | None = None
    segment_id: int | None = None  # segment the result belongs to, if the provider tracks it


class TranscriptionStream(ABC):
    """
    One open bidirectional streaming recognition session.

    Audio goes in through ``send``, one segment at a time, each tagged with
    the segment id the caller assigned; recognition results come out of
    ``results``. The provider may end the result iterator or raise from it
    at any time, which the caller treats as termination of the session.
    """

    @abstractmethod
    async def send(self, chunk: bytes, segment_id: int | None = None) -> None:
        """
        Forward a chunk of audio.

        Args:
            chunk: Mono 16kHz 16-bit linear PCM
            segment_id: Segment the chunk belongs to
        """
        pass

    async def end_segment(self, segment_id: int) -> None:
        """
        Mark the end of a segment's audio.

        Providers that recognise segments independently finish the segment
        here. The default does nothing.
        """
        return None

    @abstractmethod
    def results(self) -> AsyncIterator[ProviderResult]:
        """
        Iterate recognition results until the session ends.

        Raises:
            StreamError: If the provider fails; ``auth_failure`` marks credential problems
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the session. Must be safe to call more than once."""
        pass


class StreamingTranscriptionClient(ABC):
    """Opens streaming recognition sessions with a transcription provider."""

    @abstractmethod
    async def open(
        self,
        language_code: str,
        interim_results: bool,
        token: CancellationToken | None = None,
    ) -> TranscriptionStream:
        """
        Open a new streaming session.

        Args:
            language_code: BCP-47 language code, e.g. "en-US"
            interim_results: Whether non-final results should be reported
            token: Cancelled if the caller abandons the open

        Returns:
            The open session

        Raises:
            StreamError: If the session cannot be opened
        """
        pass
