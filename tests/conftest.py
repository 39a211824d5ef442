"""Shared fixtures for LanguageBot tests."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from languagebot.agent.provider import DialogueAgentPort
from languagebot.events.event_bus import EventBus
from languagebot.server.session_manager import SessionManager
from languagebot.session.retry import RetryPolicy
from languagebot.session.turn_controller import TurnController
from languagebot.session.types import SessionConfig
from languagebot.stt.provider import SpeechCapturePort
from languagebot.stt.types import CaptureError, CaptureErrorKind, CaptureFragment
from languagebot.tts.provider import SpeechOutputPort
from languagebot.tts.types import OutputCompleted, OutputFailed


# ---------------------------------------------------------------------------
# Fake ports
# ---------------------------------------------------------------------------


class FakeCapture(SpeechCapturePort):
    """In-memory capture port that records calls and publishes on demand.

    ``flush_on_stop`` holds events a real backend would emit while shutting
    down (e.g. the last recognized segment); they are published by the next
    ``stop()`` of a running capture.
    """

    def __init__(self) -> None:
        super().__init__()
        self.started: list[str] = []
        self.stop_calls = 0
        self.flush_on_stop: list = []
        self.mic_available = True
        self.stt_available = True
        self._capturing = False

    @property
    def is_capturing(self) -> bool:
        return self._capturing

    async def start(self, language_tag: str) -> None:
        self.started.append(language_tag)
        self._capturing = True

    async def stop(self) -> None:
        self.stop_calls += 1
        if self._capturing:
            # Real backends publish from their capture task while stop() awaits it.
            await asyncio.sleep(0)
            for event in self.flush_on_stop:
                self._events.publish(event)
            self.flush_on_stop = []
            await asyncio.sleep(0)
        self._capturing = False

    def final(self, text: str) -> None:
        self._events.publish(CaptureFragment(text=text, is_final=True))

    def interim(self, text: str) -> None:
        self._events.publish(CaptureFragment(text=text, is_final=False))

    def error(self, kind: CaptureErrorKind, message: str = "") -> None:
        self._events.publish(CaptureError(kind=kind, message=message))


class FakeOutput(SpeechOutputPort):
    """In-memory output port; completion is reported only when a test asks."""

    def __init__(self) -> None:
        super().__init__()
        self.spoken: list[tuple[str, str]] = []  # (text, utterance_id)
        self.voice_hints: list[str | None] = []
        self.cancel_calls = 0
        self.tts_available = True
        self.audio_available = False

    @property
    def provider_name(self) -> str:
        return "fake"

    async def speak(
        self,
        text: str,
        language_tag: str,
        voice_hint: str | None = None,
        *,
        utterance_id: str,
    ) -> None:
        self.spoken.append((text, utterance_id))
        self.voice_hints.append(voice_hint)

    async def cancel(self) -> None:
        self.cancel_calls += 1

    @property
    def texts(self) -> list[str]:
        return [text for text, _ in self.spoken]

    def complete(self, index: int = -1, *, interrupted: bool = False) -> None:
        self._events.publish(
            OutputCompleted(utterance_id=self.spoken[index][1], interrupted=interrupted)
        )

    def fail(self, index: int = -1, message: str = "playback failed") -> None:
        self._events.publish(
            OutputFailed(utterance_id=self.spoken[index][1], message=message)
        )


async def settle(rounds: int = 25) -> None:
    """Let queued events and scheduled restarts run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def session_config() -> SessionConfig:
    """A Mandarin restaurant scenario with three required items."""
    return SessionConfig(
        language_tag="zh-CN",
        required_items=["你好", "谢谢", "再见"],
        scenario="Ordering food at a restaurant",
    )


@pytest.fixture
def status_bus() -> EventBus:
    """Return a fresh EventBus instance for StatusEvents."""
    return EventBus(maxsize=64)


@pytest.fixture
def capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def output() -> FakeOutput:
    return FakeOutput()


@pytest.fixture
def agent() -> AsyncMock:
    """Dialogue agent mock; replies "你好！欢迎光临。" unless a test overrides it."""
    mock_agent = AsyncMock(spec=DialogueAgentPort)
    mock_agent.next_utterance.return_value = "你好！欢迎光临。"
    mock_agent.feedback.return_value = "Good job using the greetings."
    return mock_agent


@pytest.fixture
def retry_policy() -> RetryPolicy:
    """One immediate restart per failure streak."""
    return RetryPolicy(max_attempts=1, base_delay=0.0, backoff=1.0)


@pytest.fixture
async def controller(session_config, agent, capture, output, status_bus, retry_policy):
    """Return an unstarted TurnController wired to the fake ports.

    The session is ended on teardown so no consume task outlives the test.
    """
    ctrl = TurnController(
        session_config,
        agent=agent,
        capture=capture,
        output=output,
        status_bus=status_bus,
        retry_policy=retry_policy,
        restart_delay=0.0,
        agent_timeout=None,
    )
    yield ctrl
    await ctrl.end_session()


@pytest.fixture
async def session_manager(agent, capture, output, status_bus):
    """Return a SessionManager over the fake ports; any session is ended on teardown."""
    manager = SessionManager(
        agent=agent, capture=capture, output=output, status_bus=status_bus
    )
    yield manager
    await manager.shutdown()


@pytest.fixture
def app(agent, capture, output, status_bus, session_manager):
    """Return a FastAPI test app wired like create_app(), without the lifespan."""
    from fastapi import FastAPI
    from languagebot.server.routes import router

    agent.is_available = True

    test_app = FastAPI()
    test_app.state.status_bus = status_bus
    test_app.state.session_manager = session_manager
    test_app.state.agent = agent
    test_app.state.capture = capture
    test_app.state.output = output
    test_app.include_router(router)
    return test_app


@pytest.fixture
async def async_client(app):
    """Return an httpx AsyncClient configured with the test FastAPI app."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://testserver"
    ) as client:
        yield client
