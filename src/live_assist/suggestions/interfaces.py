"""Abstract interface for the language model collaborator."""

from abc import ABC, abstractmethod

from ..cancellation import CancellationToken
from .models import GenerationResult, SuggestionPrompt


class SuggestionGenerator(ABC):
    """Turns conversation text into a suggested reply."""

    @abstractmethod
    async def generate(
        self, prompt: SuggestionPrompt, token: CancellationToken | None = None
    ) -> GenerationResult:
        """
        Generate a suggestion.

        Implementations report failures through the returned result rather
        than raising, and stop work promptly once ``token`` is cancelled.

        Args:
            prompt: Transcript and context to answer
            token: Cancelled when the request is superseded

        Returns:
            GenerationResult with the suggestion text or a tagged error
        """
        pass
