"""Configuration constants for response suggestions."""

# Suggestion Triggering
DEFAULT_DEBOUNCE_DELAY = 3.0  # seconds of no interim updates before generating
MIN_PARTIAL_LENGTH = 15  # characters - shorter partial text is ignored
PARTIAL_TIMEOUT = 5.0  # seconds to wait when retrieving a partial suggestion
PARTIAL_RESULT_TTL = 30.0  # seconds an unretrieved partial result is kept
HISTORY_TURNS = 10  # recent turns included as conversation context

# Leading words stripped from transcripts before prompting
FILLER_WORDS = ("um", "uh", "hmm", "so", "like", "well")

# LLM Configuration
DEFAULT_OLLAMA_MODEL = "llama3.2:3b"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_OLLAMA_TIMEOUT = 20.0  # seconds
DEFAULT_OLLAMA_MAX_RETRIES = 2
DEFAULT_OLLAMA_TEMPERATURE = 0.4
RETRY_BACKOFF_BASE = 0.5  # seconds, doubled on each retry

# HTTP status codes mapped to error kinds
AUTH_STATUS_CODES = (401, 403)
RATE_LIMIT_STATUS_CODES = (429,)

# LLM Prompt Templates
SUGGESTION_SYSTEM_PROMPT = """You help a person answer questions during a live spoken conversation.
Given what the other person just said, write what the user could say next.
Answer in the first person, in two to four short spoken sentences, with no preamble."""

QUICK_SUGGESTION_SYSTEM_PROMPT = """You help a person answer questions during a live spoken conversation.
The other person is still talking. Give a one or two sentence outline of a good answer,
with no preamble."""

# Placeholders: {history}, {transcript}
SUGGESTION_USER_TEMPLATE = """Recent conversation:
{history}

They just said: "{transcript}"

Suggested reply:"""
