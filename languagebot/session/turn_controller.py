"""Turn-taking state machine for a practice session.

The TurnController owns the Session and is the only code that mutates it.
It requests agent lines, speaks them, opens capture once playback for the
*current* utterance completes, and records the human's line when the user
ends the turn.

Port events (capture fragments/errors, output completions/failures) are
delivered through the ports' EventBus channels into one inbox and handled
one at a time by a single consume loop. Every agent request carries a
token and every spoken line an utterance id; replies and completions that
no longer match are discarded, which is what keeps late network replies
and superseded playback from driving the state machine.
"""

import asyncio
import logging
from typing import Awaitable, Callable
from uuid import uuid4

from languagebot.agent.provider import AgentUnavailableError, DialogueAgentPort
from languagebot.config import AGENT_TIMEOUT, CAPTURE_RESTART_DELAY
from languagebot.events.event_bus import EventBus
from languagebot.session.retry import RetryPolicy
from languagebot.session.transcript import TranscriptStore
from languagebot.session.types import (
    ErrorKind,
    SessionConfig,
    Speaker,
    StatusEvent,
    TurnState,
    Utterance,
)
from languagebot.stt.provider import SpeechCapturePort
from languagebot.stt.types import CaptureError, CaptureErrorKind, CaptureFragment
from languagebot.tts.provider import SpeechOutputPort
from languagebot.tts.types import OutputCompleted, OutputFailed

logger = logging.getLogger(__name__)

STATUS_AGENT_SPEAKING = "Chatbot is speaking..."
STATUS_LISTENING = "Your turn to speak..."
STATUS_NO_SPEECH = "No speech detected. Please try again."
STATUS_AGENT_ERROR = "Error communicating with chatbot. Please try again."
STATUS_ENDED = "Session ended."

_RETRYABLE_CAPTURE_ERRORS = {
    CaptureErrorKind.SERVICE_UNAVAILABLE,
    CaptureErrorKind.TRANSIENT,
}


class SessionStateError(RuntimeError):
    """An operation was requested that the session's state does not allow."""


def _join_segment(current: str, segment: str) -> str:
    """Append a final segment, adding a space only between ASCII words."""
    if (
        current
        and segment
        and not current[-1].isspace()
        and not segment[0].isspace()
        and current[-1].isascii()
        and segment[0].isascii()
    ):
        return f"{current} {segment}"
    return current + segment


class Session:
    """All mutable state of one practice session."""

    def __init__(self, config: SessionConfig) -> None:
        self.config = config
        self.transcript = TranscriptStore()
        self.state: TurnState = TurnState.IDLE
        self.status: str = ""
        self.error_kind: ErrorKind | None = None
        self.active: bool = False

        # Capture text for the current human turn.
        self.final_text: str = ""
        self.interim_text: str = ""

        # Id of the utterance whose playback completion we are waiting for.
        self.utterance_id: str | None = None
        self.last_agent_text: str | None = None
        self.request_token: int = 0

        self.capture_failures: int = 0
        self.output_failures: int = 0

    def add_final(self, text: str) -> None:
        self.final_text = _join_segment(self.final_text, text)
        self.interim_text = ""

    def captured_text(self) -> str:
        """Definitive text for the current turn; interim text is excluded."""
        return self.final_text.strip()

    def display_text(self) -> str:
        return _join_segment(self.final_text, self.interim_text).strip()

    def reset_capture(self) -> None:
        self.final_text = ""
        self.interim_text = ""


class TurnController:
    """Drives a Session through AgentSpeaking → Listening → AgentSpeaking ... → Idle."""

    def __init__(
        self,
        config: SessionConfig,
        *,
        agent: DialogueAgentPort,
        capture: SpeechCapturePort,
        output: SpeechOutputPort,
        status_bus: EventBus[StatusEvent] | None = None,
        retry_policy: RetryPolicy | None = None,
        restart_delay: float = CAPTURE_RESTART_DELAY,
        agent_timeout: float | None = AGENT_TIMEOUT,
    ) -> None:
        self._session = Session(config)
        self._agent = agent
        self._capture = capture
        self._output = output
        self._status_bus = status_bus
        self._retry = retry_policy or RetryPolicy()
        self._restart_delay = restart_delay
        self._agent_timeout = agent_timeout

        self._inbox: asyncio.Queue = asyncio.Queue()
        self._consume_task: asyncio.Task | None = None
        self._retry_task: asyncio.Task | None = None
        self._accepting_capture: bool = False
        self._ending_turn: bool = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> TurnState:
        return self._session.state

    @property
    def status(self) -> str:
        return self._session.status

    @property
    def error_kind(self) -> ErrorKind | None:
        return self._session.error_kind

    @property
    def is_active(self) -> bool:
        return self._session.active

    @property
    def transcript(self) -> tuple[Utterance, ...]:
        return self._session.transcript.snapshot()

    # ------------------------------------------------------------------
    # User-initiated operations
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to the ports and request the agent's opening line."""
        session = self._session
        if session.active or session.transcript.is_frozen:
            raise SessionStateError("session has already been started")

        self._capture.events.subscribe(self._inbox)
        self._output.events.subscribe(self._inbox)
        session.active = True
        self._consume_task = asyncio.create_task(self._consume_loop())

        logger.info(
            "Session started (language=%s, required items=%d)",
            session.config.language_tag,
            len(session.config.required_items),
        )
        await self._request_agent_turn()

    async def end_turn(self) -> None:
        """The user finished speaking: record their line or re-open capture."""
        session = self._session
        if not session.active or session.state != TurnState.LISTENING or self._ending_turn:
            logger.info("Ignoring end of turn in state %s", session.state.value)
            return

        self._ending_turn = True
        try:
            self._cancel_retry()
            await self._capture.stop()
            # Segments flushed while the backend shut down are already queued.
            await self._drain_inbox()
            self._accepting_capture = False
            if not session.active or session.state != TurnState.LISTENING:
                return

            text = session.captured_text()
            session.reset_capture()
            if not text:
                logger.info("End of turn with no recognized speech — restarting capture")
                self._set_status(STATUS_NO_SPEECH)
                self._schedule(self._restart_delay, self._restart_capture)
                return

            session.transcript.append(Speaker.HUMAN, text)
        finally:
            self._ending_turn = False

        await self._request_agent_turn()

    async def retry_turn(self) -> bool:
        """Re-request the agent's line after an agent failure.

        Only an ``agent_unavailable`` error may be retried this way; other
        fatal errors require a new session. Returns True if a request was made.
        """
        session = self._session
        if (
            not session.active
            or session.state != TurnState.ERROR
            or session.error_kind != ErrorKind.AGENT_UNAVAILABLE
        ):
            logger.info(
                "Ignoring retry in state %s (error=%s)",
                session.state.value,
                session.error_kind.value if session.error_kind else None,
            )
            return False
        await self._request_agent_turn()
        return True

    async def end_session(self) -> tuple[Utterance, ...]:
        """Stop every port, freeze the transcript and return it. Works from any state."""
        session = self._session
        if session.transcript.is_frozen:
            return session.transcript.snapshot()

        session.active = False
        session.request_token += 1
        self._cancel_retry()
        self._accepting_capture = False

        await self._capture.stop()
        await self._output.cancel()

        self._capture.events.unsubscribe(self._inbox)
        self._output.events.unsubscribe(self._inbox)
        task, self._consume_task = self._consume_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        session.utterance_id = None
        session.reset_capture()
        session.state = TurnState.IDLE
        session.transcript.freeze()
        self._set_status(STATUS_ENDED)
        logger.info("Session ended with %d utterances", len(session.transcript))
        return session.transcript.snapshot()

    # ------------------------------------------------------------------
    # Agent turn
    # ------------------------------------------------------------------

    async def _request_agent_turn(self) -> None:
        session = self._session
        session.state = TurnState.AGENT_SPEAKING
        session.error_kind = None
        session.output_failures = 0
        self._set_status(STATUS_AGENT_SPEAKING)

        session.request_token += 1
        token = session.request_token
        try:
            request = self._agent.next_utterance(session.transcript.snapshot(), session.config)
            if self._agent_timeout is not None:
                text = await asyncio.wait_for(request, timeout=self._agent_timeout)
            else:
                text = await request
        except Exception as exc:
            if not isinstance(exc, (AgentUnavailableError, asyncio.TimeoutError)):
                logger.warning("Dialogue agent raised unexpectedly", exc_info=True)
            if not self._is_current_request(token):
                logger.debug("Ignoring agent failure for superseded request %d", token)
                return
            logger.warning("Dialogue agent unavailable: %s", str(exc) or type(exc).__name__)
            await self._fail(ErrorKind.AGENT_UNAVAILABLE, STATUS_AGENT_ERROR)
            return

        if not self._is_current_request(token):
            logger.info("Discarding agent reply that arrived after the session moved on")
            return

        session.transcript.append(Speaker.AGENT, text)
        session.last_agent_text = text
        await self._speak(text)

    def _is_current_request(self, token: int) -> bool:
        session = self._session
        return (
            session.active
            and token == session.request_token
            and session.state == TurnState.AGENT_SPEAKING
        )

    async def _speak(self, text: str) -> None:
        session = self._session
        utterance_id = uuid4().hex
        session.utterance_id = utterance_id
        await self._output.speak(
            text,
            session.config.language_tag,
            session.config.voice_hint,
            utterance_id=utterance_id,
        )

    async def _speak_again(self) -> None:
        session = self._session
        if session.active and session.state == TurnState.AGENT_SPEAKING and session.last_agent_text:
            await self._speak(session.last_agent_text)

    # ------------------------------------------------------------------
    # Human turn
    # ------------------------------------------------------------------

    async def _begin_listening(self, status: str = STATUS_LISTENING) -> None:
        session = self._session
        session.state = TurnState.LISTENING
        session.utterance_id = None
        session.reset_capture()
        session.capture_failures = 0
        self._set_status(status)
        await self._open_capture()

    async def _open_capture(self) -> None:
        # stop() is idempotent; guarantees a single capture stream.
        await self._capture.stop()
        self._accepting_capture = True
        await self._capture.start(self._session.config.language_tag)

    async def _restart_capture(self) -> None:
        session = self._session
        if not session.active or session.state != TurnState.LISTENING:
            return
        self._set_status(STATUS_LISTENING)
        await self._open_capture()

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def _consume_loop(self) -> None:
        """Handle port events one at a time in arrival order."""
        while True:
            event = await self._inbox.get()
            try:
                await self._dispatch(event)
            except Exception:
                logger.warning("Error handling %s", type(event).__name__, exc_info=True)

    async def _drain_inbox(self) -> None:
        """Handle everything already queued, without waiting for more."""
        while True:
            try:
                event = self._inbox.get_nowait()
            except asyncio.QueueEmpty:
                return
            if isinstance(event, CaptureError):
                logger.info("Ignoring capture error reported while ending the turn: %s", event.kind.value)
                continue
            await self._dispatch(event)

    async def _dispatch(self, event) -> None:
        if isinstance(event, CaptureFragment):
            self._on_fragment(event)
        elif isinstance(event, CaptureError):
            await self._on_capture_error(event)
        elif isinstance(event, OutputCompleted):
            await self._on_output_completed(event)
        elif isinstance(event, OutputFailed):
            await self._on_output_failed(event)
        else:
            logger.debug("Ignoring unknown event %r", event)

    def _on_fragment(self, fragment: CaptureFragment) -> None:
        session = self._session
        if not session.active or session.state != TurnState.LISTENING or not self._accepting_capture:
            logger.debug("Discarding capture fragment outside a listening turn")
            return
        if fragment.is_final:
            session.add_final(fragment.text)
            session.capture_failures = 0
        else:
            session.interim_text = fragment.text
        self._set_status(f"You: {session.display_text()}")

    async def _on_capture_error(self, error: CaptureError) -> None:
        session = self._session
        if not session.active or session.state != TurnState.LISTENING:
            logger.debug("Discarding capture error %s outside a listening turn", error.kind.value)
            return
        if self._ending_turn:
            # The backend may report its shutdown after the final segment.
            logger.info("Ignoring capture error reported while ending the turn: %s", error.kind.value)
            return

        kind = ErrorKind(error.kind.value)
        detail = error.message or kind.value
        if error.kind in _RETRYABLE_CAPTURE_ERRORS:
            session.capture_failures += 1
            attempt = session.capture_failures
            if self._retry.allows(attempt):
                delay = self._retry.delay_for(attempt)
                logger.warning(
                    "Capture error (%s: %s) — restart attempt %d/%d in %.1fs",
                    kind.value,
                    detail,
                    attempt,
                    self._retry.max_attempts,
                    delay,
                )
                self._accepting_capture = False
                await self._capture.stop()
                self._set_status(f"Error: {detail}. Retrying...", error_kind=kind)
                self._schedule(delay, self._restart_capture)
                return
            logger.warning(
                "Capture error (%s: %s) — retry limit of %d reached",
                kind.value,
                detail,
                self._retry.max_attempts,
            )

        await self._fail(kind, f"Error: {detail}")

    async def _on_output_completed(self, event: OutputCompleted) -> None:
        session = self._session
        if (
            not session.active
            or session.state != TurnState.AGENT_SPEAKING
            or event.utterance_id != session.utterance_id
        ):
            logger.debug("Discarding stale completion for utterance %s", event.utterance_id)
            return
        await self._begin_listening()

    async def _on_output_failed(self, event: OutputFailed) -> None:
        session = self._session
        if (
            not session.active
            or session.state != TurnState.AGENT_SPEAKING
            or event.utterance_id != session.utterance_id
        ):
            logger.debug("Discarding stale failure for utterance %s", event.utterance_id)
            return

        session.utterance_id = None
        session.output_failures += 1
        attempt = session.output_failures
        if self._retry.allows(attempt):
            delay = self._retry.delay_for(attempt)
            logger.warning(
                "Speech output failed (%s) — retry %d/%d in %.1fs",
                event.message,
                attempt,
                self._retry.max_attempts,
                delay,
            )
            self._schedule(delay, self._speak_again)
            return

        logger.warning(
            "Speech output failed (%s) — retry limit reached, continuing without audio",
            event.message,
        )
        await self._begin_listening(
            f"Error: could not play the reply. {STATUS_LISTENING}"
        )

    # ------------------------------------------------------------------
    # Failure, status, scheduling
    # ------------------------------------------------------------------

    async def _fail(self, kind: ErrorKind, status: str) -> None:
        """Enter Error: stop every port and stop acting automatically."""
        session = self._session
        session.state = TurnState.ERROR
        session.error_kind = kind
        session.utterance_id = None
        self._cancel_retry()
        self._accepting_capture = False
        await self._capture.stop()
        await self._output.cancel()
        self._set_status(status, error_kind=kind)
        logger.warning("Session entered error state (%s)", kind.value)

    def _set_status(self, status: str, *, error_kind: ErrorKind | None = None) -> None:
        session = self._session
        session.status = status
        logger.info("[%s] %s", session.state.value, status)
        if self._status_bus is not None:
            self._status_bus.publish(
                StatusEvent(state=session.state, status=status, error_kind=error_kind)
            )

    def _schedule(self, delay: float, action: Callable[[], Awaitable[None]]) -> None:
        """Run *action* after *delay*; at most one pending action at a time."""
        self._cancel_retry()
        self._retry_task = asyncio.create_task(self._run_later(delay, action))

    async def _run_later(self, delay: float, action: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(delay)
        try:
            await action()
        except Exception:
            logger.warning("Scheduled restart failed", exc_info=True)

    def _cancel_retry(self) -> None:
        task, self._retry_task = self._retry_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
