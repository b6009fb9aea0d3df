"""Data models for suggestion generation."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..cancellation import CancellationToken
from ..speech.models import Role
from .config import (
    DEFAULT_DEBOUNCE_DELAY,
    HISTORY_TURNS,
    MIN_PARTIAL_LENGTH,
    PARTIAL_RESULT_TTL,
    PARTIAL_TIMEOUT,
)


class SuggestionStatus(str, Enum):
    """Lifecycle of a suggestion request."""

    PENDING = "pending"
    COMPLETE = "complete"
    TIMED_OUT = "timed_out"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self is not SuggestionStatus.PENDING


class ErrorKind(str, Enum):
    """Why a generation failed."""

    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    PROVIDER = "provider"


@dataclass
class SuggestionPrompt:
    """Input handed to the suggestion generator."""

    transcript: str
    history: list[str] = field(default_factory=list)
    quick: bool = False
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationResult:
    """Structured outcome of one generation; never raised."""

    success: bool
    text: str | None = None
    error: str | None = None
    kind: ErrorKind | None = None
    status_code: int | None = None
    processing_time: float = 0.0

    @classmethod
    def failure(
        cls, error: str, kind: ErrorKind, status_code: int | None = None
    ) -> "GenerationResult":
        return cls(success=False, error=error, kind=kind, status_code=status_code)


@dataclass
class SuggestionRequest:
    """A partial-suggestion prefetch keyed by context id."""

    context_id: str
    role: Role
    transcript: str
    created_at: float
    status: SuggestionStatus = SuggestionStatus.PENDING
    completed_at: float | None = None
    result: GenerationResult | None = None
    token: CancellationToken | None = field(default=None, repr=False)
    task: asyncio.Task | None = field(default=None, repr=False)


@dataclass
class PartialSuggestion:
    """Result of retrieving a prefetched suggestion."""

    suggestion: str | None
    is_complete: bool


@dataclass
class SuggestionConfig:
    """Coordinator timing and thresholds. Durations are in seconds."""

    debounce_delay: float = DEFAULT_DEBOUNCE_DELAY
    min_partial_length: int = MIN_PARTIAL_LENGTH
    partial_timeout: float = PARTIAL_TIMEOUT
    partial_result_ttl: float = PARTIAL_RESULT_TTL
    history_turns: int = HISTORY_TURNS
    trigger_role: Role = Role.OTHER_PARTY

    def __post_init__(self) -> None:
        if self.debounce_delay <= 0:
            raise ValueError("Debounce delay must be positive")
        if self.partial_timeout <= 0:
            raise ValueError("Partial timeout must be positive")
