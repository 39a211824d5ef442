"""FastAPI application factory for LanguageBot.

Creates the FastAPI app with lifespan management for the dialogue agent,
the capture and output backends, and the session manager. Run it with::

    uvicorn languagebot.server.app:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from languagebot import __version__
from languagebot.agent.gemini_client import GeminiAgent
from languagebot.config import LOG_LEVEL
from languagebot.events.event_bus import EventBus
from languagebot.server.routes import router
from languagebot.server.session_manager import SessionManager
from languagebot.session.types import StatusEvent
from languagebot.stt.whisper_capture import WhisperSpeechCapture
from languagebot.tts.speech_output import ElevenLabsSpeechOutput

logger = logging.getLogger(__name__)

# Module-level singletons shared across the process.
status_bus: EventBus[StatusEvent] = EventBus()
agent = GeminiAgent()
capture = WhisperSpeechCapture()
output = ElevenLabsSpeechOutput()
session_manager = SessionManager(
    agent=agent,
    capture=capture,
    output=output,
    status_bus=status_bus,
)


def _setup_logging() -> None:
    """Configure the root logger once, unless the host already did."""
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )
    root.setLevel(LOG_LEVEL.upper())
    root.addHandler(handler)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the agent and audio backends on startup; close them in reverse order."""
    logger.info("LanguageBot server starting up")
    await agent.start()
    await capture.open()
    await output.open()
    try:
        yield
    finally:
        logger.info("LanguageBot server shutting down")
        await session_manager.shutdown()
        await output.close()
        await capture.close()
        await agent.stop()


def create_app() -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    The returned app has:
    * ``app.state.status_bus`` — the shared StatusEvent bus
    * ``app.state.session_manager`` — the SessionManager
    * ``app.state.agent`` / ``capture`` / ``output`` — the backends, for /health
    """
    _setup_logging()
    app = FastAPI(title="LanguageBot", version=__version__, lifespan=lifespan)

    app.state.status_bus = status_bus
    app.state.session_manager = session_manager
    app.state.agent = agent
    app.state.capture = capture
    app.state.output = output

    app.include_router(router)

    logger.info("FastAPI app created")
    return app
