"""Lifecycle of the streaming transcription session."""

import asyncio
import itertools
import time
from collections.abc import Callable

from ..cancellation import CancellationToken
from ..events import ErrorCategory, ErrorEvent, EventChannel, StatusEvent, Subscription
from .config import RESTART_WINDOW, STREAM_CHUNK_BYTES, STREAM_OPEN_TIMEOUT
from .exceptions import StreamError
from .interfaces import ProviderResult, StreamingTranscriptionClient, TranscriptionStream
from .logging_utils import get_logger
from .models import Role, StartResult, StreamConfig, StreamState, TranscriptEvent

logger = get_logger(__name__)

_MAX_TRACKED_SEGMENTS = 64


class StreamingTranscriptionBridge:
    """
    Owns the one streaming connection of a conversation.

    States move ``idle -> starting -> active``, ``active <-> paused`` and any
    state ``-> terminated`` on stop. A terminated bridge does not start
    again; ``reconfigure`` swaps the configuration of a running stream
    through ``starting`` without terminating it.

    When the provider ends or breaks the stream while it is active or
    paused, the bridge reopens it once with the last configuration. A
    second failure within ``restart_window`` seconds, a failed reopen or an
    authentication failure terminates the stream and publishes a terminal
    error event.

    Every forwarded segment gets an id, and the role is recorded against it
    when the audio is sent. Results are credited through that id; results a
    provider leaves untagged answer the oldest segment still waiting for a
    final. Transcripts are published on the channel returned by
    ``subscribe_transcripts``.
    """

    def __init__(
        self,
        client: StreamingTranscriptionClient,
        events: EventChannel | None = None,
        restart_window: float = RESTART_WINDOW,
        chunk_bytes: int = STREAM_CHUNK_BYTES,
        open_timeout: float = STREAM_OPEN_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the bridge.

        Args:
            client: Transcription provider used to open sessions
            events: Channel for status and error events
            restart_window: Seconds after a restart in which another failure is terminal
            chunk_bytes: Maximum bytes per forwarded chunk
            open_timeout: Seconds to wait for the provider to open a session
            clock: Monotonic time source
        """
        self._client = client
        self._events = events
        self._transcripts = EventChannel()
        self._restart_window = restart_window
        self._chunk_bytes = chunk_bytes
        self._open_timeout = open_timeout
        self._clock = clock

        self._state = StreamState.IDLE
        self._config: StreamConfig | None = None
        self._stream: TranscriptionStream | None = None
        self._receive_task: asyncio.Task | None = None
        self._open_token: CancellationToken | None = None
        self._last_restart_at: float | None = None
        self._send_lock = asyncio.Lock()
        self._segment_ids = itertools.count(1)
        self._segment_roles: dict[int, Role] = {}
        self._last_role = Role.OTHER_PARTY

        self.last_error: StreamError | None = None
        self.restart_count = 0
        self.open_count = 0

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def config(self) -> StreamConfig | None:
        return self._config

    def subscribe_transcripts(self) -> Subscription:
        """Subscribe to TranscriptEvents produced by this bridge."""
        return self._transcripts.subscribe()

    async def start(self, config: StreamConfig | None = None) -> StartResult:
        """
        Open the streaming session.

        Args:
            config: Language and routing, defaults to the last used configuration

        Returns:
            StartResult; ``started`` is False if the bridge is not idle or the
            session could not be opened
        """
        if self._state is not StreamState.IDLE:
            logger.warning(f"⚠️ Stream start ignored, state is {self._state.value}")
            return StartResult(started=False, error=f"Stream already {self._state.value}")

        self._config = config or self._config or StreamConfig()
        self._last_restart_at = None
        self.last_error = None
        self._set_state(StreamState.STARTING)

        try:
            stream = await self._open()
        except asyncio.CancelledError:
            if self._open_token is not None and self._open_token.cancelled:
                logger.debug("Stream open abandoned by stop()")
                return StartResult(started=False, error="Stream stopped while starting")
            raise
        except Exception as e:
            auth = isinstance(e, StreamError) and e.auth_failure
            logger.error(f"❌ Failed to open transcription stream: {e}")
            if self._state is StreamState.STARTING:
                self._set_state(StreamState.IDLE)
            self._publish_error(f"Failed to start transcription: {e}", auth=auth, terminal=False)
            return StartResult(started=False, error=str(e))

        if self._state is not StreamState.STARTING:
            await self._close_quietly(stream)
            return StartResult(started=False, error="Stream stopped while starting")

        self._attach(stream, StreamState.ACTIVE)
        logger.info(f"✅ Transcription stream active ({self._config.language_code})")
        return StartResult(started=True)

    def pause(self) -> bool:
        """Stop forwarding audio; the connection stays open."""
        if self._state is not StreamState.ACTIVE:
            return False
        self._set_state(StreamState.PAUSED)
        return True

    def resume(self) -> bool:
        """Resume forwarding audio after ``pause``."""
        if self._state is not StreamState.PAUSED:
            return False
        self._set_state(StreamState.ACTIVE)
        return True

    async def reconfigure(self, config: StreamConfig) -> StartResult:
        """
        Reopen a running stream with a new configuration.

        The state moves ``active -> starting -> active`` (or back to
        ``paused``) without passing through ``terminated``. A failed reopen
        terminates the stream the same way a failed restart does.

        Args:
            config: Language and routing for the new session

        Returns:
            StartResult; ``started`` is False unless the stream was active or
            paused and the new session opened
        """
        if self._state not in (StreamState.ACTIVE, StreamState.PAUSED):
            logger.warning(f"⚠️ Stream reconfigure ignored, state is {self._state.value}")
            return StartResult(started=False, error=f"Stream is {self._state.value}")

        was_paused = self._state is StreamState.PAUSED
        self._config = config
        self._last_restart_at = None
        self._set_state(StreamState.STARTING, detail="reconfiguring")
        await self._detach()

        try:
            stream = await self._open()
        except asyncio.CancelledError:
            if self._open_token is not None and self._open_token.cancelled:
                logger.debug("Stream reopen abandoned by stop()")
                return StartResult(started=False, error="Stream stopped while starting")
            raise
        except Exception as e:
            auth = isinstance(e, StreamError) and e.auth_failure
            self._fail(f"Transcription stream reopen failed: {e}", auth=auth)
            return StartResult(started=False, error=str(e))

        if self._state is not StreamState.STARTING:
            await self._close_quietly(stream)
            return StartResult(started=False, error="Stream stopped while starting")

        self._attach(stream, StreamState.PAUSED if was_paused else StreamState.ACTIVE)
        logger.info(f"✅ Transcription stream reopened ({config.language_code})")
        return StartResult(started=True)

    async def send_audio(self, audio: bytes, role: Role) -> bool:
        """
        Forward one finished segment of audio.

        Segments are forwarded one at a time and closed with
        ``end_segment``. The state is checked before every chunk, so
        nothing is forwarded once ``stop`` has been requested.

        Args:
            audio: Mono 16kHz 16-bit PCM
            role: Role the audio belongs to

        Returns:
            True if every chunk was forwarded
        """
        config = self._config or StreamConfig()
        if role not in config.routed_roles:
            logger.trace(f"Not routing {role.value} audio")
            return False

        async with self._send_lock:
            if self._state is not StreamState.ACTIVE:
                logger.debug(f"Dropping {role.value} audio, stream {self._state.value}")
                return False

            stream = self._stream
            if stream is None:
                return False
            segment_id = self._track_segment(role)
            try:
                for offset in range(0, len(audio), self._chunk_bytes):
                    # A segment never spans two sessions
                    if self._state is not StreamState.ACTIVE or self._stream is not stream:
                        logger.debug("Stream left active state mid-segment, dropping remainder")
                        return False
                    await stream.send(audio[offset : offset + self._chunk_bytes], segment_id)
                await stream.end_segment(segment_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # The receive loop observes the broken stream and handles restart
                logger.warning(f"⚠️ Failed to forward audio: {e}")
                return False
        return True

    async def stop(self) -> None:
        """Terminate the session and release the connection. Idempotent."""
        if (
            self._state is StreamState.TERMINATED
            and self._stream is None
            and self._receive_task is None
        ):
            return

        self._set_state(StreamState.TERMINATED)

        if self._open_token is not None:
            self._open_token.cancel("stop requested")

        await self._detach()
        logger.debug("🛑 Transcription stream stopped")

    async def _detach(self) -> None:
        task, self._receive_task = self._receive_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        stream, self._stream = self._stream, None
        if stream is not None:
            await self._close_quietly(stream)

    def _track_segment(self, role: Role) -> int:
        segment_id = next(self._segment_ids)
        self._segment_roles[segment_id] = role
        self._last_role = role
        # Segments that never got a final result are forgotten oldest first
        while len(self._segment_roles) > _MAX_TRACKED_SEGMENTS:
            del self._segment_roles[next(iter(self._segment_roles))]
        return segment_id

    def _role_for(self, result: ProviderResult) -> Role:
        segment_id = result.segment_id
        if segment_id is None and self._segment_roles:
            segment_id = next(iter(self._segment_roles))
        if segment_id not in self._segment_roles:
            return self._last_role
        if result.is_final:
            return self._segment_roles.pop(segment_id)
        return self._segment_roles[segment_id]

    async def _open(self) -> TranscriptionStream:
        config = self._config or StreamConfig()
        token = CancellationToken("stream-open")
        self._open_token = token
        task = asyncio.create_task(
            self._client.open(config.language_code, config.interim_results, token)
        )
        token.link_task(task)
        try:
            stream = await asyncio.wait_for(task, timeout=self._open_timeout)
        except TimeoutError as e:
            raise StreamError(f"Timed out opening stream after {self._open_timeout}s") from e
        self.open_count += 1
        return stream

    def _attach(self, stream: TranscriptionStream, state: StreamState) -> None:
        # Segments sent to an earlier session will not get results
        self._segment_roles.clear()
        self._stream = stream
        self._set_state(state)
        self._receive_task = asyncio.create_task(self._receive_loop(stream))

    async def _receive_loop(self, stream: TranscriptionStream) -> None:
        error: Exception | None = None
        try:
            async for result in stream.results():
                self._handle_result(result)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e

        if stream is not self._stream or self._state not in (
            StreamState.ACTIVE,
            StreamState.PAUSED,
        ):
            return

        await self._handle_unexpected_termination(error)

    def _handle_result(self, result: ProviderResult) -> None:
        # Resolve first so a blank final still closes its segment
        role = self._role_for(result)
        if not result.text or not result.text.strip():
            return

        event = TranscriptEvent(
            role=role,
            text=result.text.strip(),
            is_final=result.is_final,
            timestamp=self._clock(),
            words=result.words,
        )
        logger.trace(
            f"📝 [{event.role.value}] {'final' if event.is_final else 'interim'}: '{event.text}'"
        )
        self._transcripts.publish(event)

    async def _handle_unexpected_termination(self, error: Exception | None) -> None:
        reason = str(error) if error else "stream closed by provider"
        was_paused = self._state is StreamState.PAUSED

        stream, self._stream = self._stream, None
        if stream is not None:
            await self._close_quietly(stream)

        if isinstance(error, StreamError) and error.auth_failure:
            self._fail(f"Transcription authentication failed: {reason}", auth=True)
            return

        now = self._clock()
        if self._last_restart_at is not None and now - self._last_restart_at < self._restart_window:
            self._fail(f"Transcription stream failed again after restart: {reason}")
            return

        self._last_restart_at = now
        self.restart_count += 1
        logger.warning(f"⚠️ Transcription stream ended unexpectedly ({reason}), restarting")
        self._set_state(StreamState.STARTING, detail="restarting")

        try:
            new_stream = await self._open()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            auth = isinstance(e, StreamError) and e.auth_failure
            self._fail(f"Transcription stream restart failed: {e}", auth=auth)
            return

        if self._state is not StreamState.STARTING:
            await self._close_quietly(new_stream)
            return

        self._attach(new_stream, StreamState.PAUSED if was_paused else StreamState.ACTIVE)
        logger.info("✅ Transcription stream restarted")

    def _fail(self, message: str, auth: bool = False) -> None:
        logger.error(f"❌ {message}")
        self.last_error = StreamError(message, auth_failure=auth)
        self._set_state(StreamState.TERMINATED, detail=message)
        self._receive_task = None
        self._publish_error(message, auth=auth, terminal=True)

    def _publish_error(self, message: str, auth: bool, terminal: bool) -> None:
        if self._events is None:
            return
        category = ErrorCategory.CREDENTIALS_INVALID if auth else ErrorCategory.STREAM
        self._events.publish(ErrorEvent(message=message, category=category, terminal=terminal))

    def _set_state(self, state: StreamState, detail: str | None = None) -> None:
        if state is self._state:
            return
        logger.debug(f"🔁 Stream {self._state.value} -> {state.value}")
        self._state = state
        if self._events is not None:
            self._events.publish(StatusEvent(state=f"stream_{state.value}", detail=detail))

    async def _close_quietly(self, stream: TranscriptionStream) -> None:
        try:
            await stream.close()
        except Exception as e:
            logger.warning(f"⚠️ Error closing transcription stream: {e}")
