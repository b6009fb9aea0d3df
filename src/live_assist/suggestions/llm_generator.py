"""Suggestion generation using a local LLM via Ollama."""

import asyncio
import logging
import time
from typing import Any

import ollama

from ..cancellation import CancellationToken
from .config import (
    AUTH_STATUS_CODES,
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OLLAMA_MAX_RETRIES,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OLLAMA_TEMPERATURE,
    DEFAULT_OLLAMA_TIMEOUT,
    QUICK_SUGGESTION_SYSTEM_PROMPT,
    RATE_LIMIT_STATUS_CODES,
    RETRY_BACKOFF_BASE,
    SUGGESTION_SYSTEM_PROMPT,
    SUGGESTION_USER_TEMPLATE,
)
from .exceptions import GenerationError
from .interfaces import SuggestionGenerator
from .models import ErrorKind, GenerationResult, SuggestionPrompt

logger = logging.getLogger(__name__)


def kind_for_status(status_code: int | None) -> ErrorKind:
    """Map an HTTP status code to an error kind."""
    if status_code in AUTH_STATUS_CODES:
        return ErrorKind.AUTH
    if status_code in RATE_LIMIT_STATUS_CODES:
        return ErrorKind.RATE_LIMIT
    return ErrorKind.PROVIDER


class OllamaSuggestionGenerator(SuggestionGenerator):
    """Generates reply suggestions with a chat model served by Ollama."""

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        base_url: str = DEFAULT_OLLAMA_BASE_URL,
        timeout: float = DEFAULT_OLLAMA_TIMEOUT,
        max_retries: int = DEFAULT_OLLAMA_MAX_RETRIES,
        temperature: float = DEFAULT_OLLAMA_TEMPERATURE,
    ) -> None:
        """
        Initialize the generator.

        Args:
            model: Ollama model name
            base_url: Ollama service URL
            timeout: Request timeout in seconds
            max_retries: Attempts made when a request times out
            temperature: LLM temperature for generation
        """
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.temperature = temperature
        self._client = ollama.AsyncClient(host=base_url)

    def _build_messages(self, prompt: SuggestionPrompt) -> list[dict[str, str]]:
        # Quotes and newlines in live speech would break the template framing
        transcript = prompt.transcript.replace("\n", " ").replace('"', "'")[:2000]
        history = "\n".join(prompt.history) if prompt.history else "(none)"
        system = QUICK_SUGGESTION_SYSTEM_PROMPT if prompt.quick else SUGGESTION_SYSTEM_PROMPT

        return [
            {"role": "system", "content": system},
            {
                "role": "user",
                "content": SUGGESTION_USER_TEMPLATE.format(history=history, transcript=transcript),
            },
        ]

    def _extract_text(self, response: Any) -> str:
        try:
            content = response["message"]["content"]
        except (KeyError, TypeError) as e:
            raise GenerationError(f"Malformed response: {e}") from e

        text = (content or "").strip()
        if not text:
            raise GenerationError("Model returned an empty suggestion")
        return text

    async def generate(
        self, prompt: SuggestionPrompt, token: CancellationToken | None = None
    ) -> GenerationResult:
        """
        Generate a suggested reply.

        Timeouts are retried with exponential backoff up to ``max_retries``
        attempts. Cancelling ``token`` aborts the in-flight request.

        Args:
            prompt: Transcript and context to answer
            token: Cancelled when the request is superseded

        Returns:
            GenerationResult; failures carry an ErrorKind and, for HTTP
            errors, the status code
        """
        start_time = time.time()

        if not prompt.transcript or not prompt.transcript.strip():
            return GenerationResult.failure("Empty transcript", ErrorKind.PROVIDER)

        messages = self._build_messages(prompt)

        for attempt in range(self.max_retries):
            if token is not None and token.cancelled:
                return GenerationResult.failure("Generation cancelled", ErrorKind.CANCELLED)

            request = asyncio.create_task(
                asyncio.wait_for(
                    self._client.chat(
                        model=self.model,
                        messages=messages,
                        options={"temperature": self.temperature},
                    ),
                    timeout=self.timeout,
                )
            )
            if token is not None:
                token.link_task(request)

            try:
                response = await request
                text = self._extract_text(response)

            except asyncio.CancelledError:
                if token is not None and token.cancelled:
                    logger.debug("Suggestion request cancelled")
                    return GenerationResult.failure("Generation cancelled", ErrorKind.CANCELLED)
                raise

            except TimeoutError:
                logger.warning(
                    f"Suggestion timeout on attempt {attempt + 1}/{self.max_retries}"
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(RETRY_BACKOFF_BASE * 2**attempt)
                    continue
                return GenerationResult.failure(
                    f"Timed out after {self.max_retries} attempts", ErrorKind.TIMEOUT
                )

            except ollama.ResponseError as e:
                kind = kind_for_status(e.status_code)
                logger.error(f"Ollama error {e.status_code}: {e.error}")
                return GenerationResult.failure(str(e.error), kind, status_code=e.status_code)

            except ConnectionError as e:
                logger.error(f"Connection error: {e}")
                return GenerationResult.failure(f"Connection failed: {e}", ErrorKind.NETWORK)

            except GenerationError as e:
                logger.error(f"Suggestion error: {e}")
                return GenerationResult.failure(str(e), ErrorKind.PROVIDER)

            except Exception as e:
                logger.error(f"Suggestion generation error: {e}")
                return GenerationResult.failure(f"Generation failed: {e}", ErrorKind.PROVIDER)

            if token is not None and token.cancelled:
                return GenerationResult.failure("Generation cancelled", ErrorKind.CANCELLED)

            processing_time = time.time() - start_time
            logger.info(f"Suggestion generated in {processing_time:.2f}s ({len(text)} chars)")
            return GenerationResult(success=True, text=text, processing_time=processing_time)

        return GenerationResult.failure(
            f"Timed out after {self.max_retries} attempts", ErrorKind.TIMEOUT
        )
