"""Debounced, cancellable reply suggestions."""

from .exceptions import GenerationError, SuggestionError
from .models import (
    ErrorKind,
    GenerationResult,
    PartialSuggestion,
    SuggestionConfig,
    SuggestionPrompt,
    SuggestionRequest,
    SuggestionStatus,
)

__all__ = [
    "ErrorKind",
    "GenerationError",
    "GenerationResult",
    "PartialSuggestion",
    "SuggestionConfig",
    "SuggestionError",
    "SuggestionPrompt",
    "SuggestionRequest",
    "SuggestionStatus",
]
