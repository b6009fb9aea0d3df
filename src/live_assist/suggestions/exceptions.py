"""Custom exceptions for suggestion generation."""


class SuggestionError(Exception):
    """Base exception for suggestion errors."""

    pass


class GenerationError(SuggestionError):
    """Exception raised when the language model request fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
