"""HTTP routes for the LanguageBot server.

Endpoints
---------
POST /session           Start a practice session from a SessionConfig body.
                        Any session already running is ended first.

POST /session/end-turn  The user finished speaking.

POST /session/retry     Re-request the agent's line after an agent failure.

POST /session/end       End the session and return the score report.

GET  /session           Current state, status line and transcript.

GET  /report            The last score report, if a session has ended.

GET  /status            Streams StatusEvents as Server-Sent Events (SSE).

GET  /health            Backend availability and current session state.
"""

import asyncio
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from languagebot import __version__
from languagebot.events.event_bus import EventBus
from languagebot.server.session_manager import SessionManager
from languagebot.session.turn_controller import SessionStateError, TurnController
from languagebot.session.types import SessionConfig

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_manager(request: Request) -> SessionManager:
    """Retrieve the shared SessionManager from application state."""
    return request.app.state.session_manager


def _get_status_bus(request: Request) -> EventBus:
    """Retrieve the shared status bus from application state."""
    return request.app.state.status_bus


def _conflict(exc: SessionStateError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"status": "error", "reason": str(exc)})


def _session_view(controller: TurnController) -> dict:
    session = controller.session
    return {
        "active": controller.is_active,
        "state": controller.state.value,
        "status": controller.status,
        "error_kind": controller.error_kind.value if controller.error_kind else None,
        "interim_text": session.interim_text,
        "transcript": [u.model_dump(mode="json") for u in controller.transcript],
    }


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


@router.post("/session")
async def start_session(config: SessionConfig, request: Request) -> dict:
    """Start a new session and request the agent's opening line."""
    manager = _get_manager(request)
    controller = await manager.start_session(config)
    logger.info("Started session (%s, %d items)", config.language_tag, len(config.required_items))
    return {"status": "ok", **_session_view(controller)}


@router.post("/session/end-turn")
async def end_turn(request: Request):
    manager = _get_manager(request)
    try:
        controller = await manager.end_turn()
    except SessionStateError as exc:
        return _conflict(exc)
    return {"status": "ok", **_session_view(controller)}


@router.post("/session/retry")
async def retry_turn(request: Request):
    manager = _get_manager(request)
    try:
        retried = await manager.retry_turn()
    except SessionStateError as exc:
        return _conflict(exc)
    return {"status": "ok" if retried else "ignored", **_session_view(manager.controller)}


@router.post("/session/end")
async def end_session(request: Request):
    """End the session and return coverage, transcript views and feedback."""
    manager = _get_manager(request)
    try:
        report = await manager.end_session()
    except SessionStateError as exc:
        return _conflict(exc)
    return {
        "status": "ok",
        "summary": report.coverage.summary,
        "used_count": report.coverage.used_count,
        **report.model_dump(mode="json"),
    }


@router.get("/session")
async def get_session(request: Request):
    controller = _get_manager(request).controller
    if controller is None:
        return JSONResponse(status_code=404, content={"status": "error", "reason": "no session"})
    return _session_view(controller)


@router.get("/report")
async def get_report(request: Request):
    report = _get_manager(request).last_report
    if report is None:
        return JSONResponse(status_code=404, content={"status": "error", "reason": "no report"})
    return {
        "summary": report.coverage.summary,
        "used_count": report.coverage.used_count,
        **report.model_dump(mode="json"),
    }


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------


@router.get("/health")
async def health(request: Request) -> dict:
    """Return server health and backend availability."""
    state = request.app.state
    controller = _get_manager(request).controller
    return {
        "status": "ok",
        "version": __version__,
        "agent_available": state.agent.is_available,
        "mic_available": state.capture.mic_available,
        "stt_available": state.capture.stt_available,
        "tts_available": state.output.tts_available,
        "audio_available": state.output.audio_available,
        "tts_provider": state.output.provider_name,
        "session_state": controller.state.value if controller else None,
        "status_subscribers": _get_status_bus(request).subscriber_count,
    }


# ---------------------------------------------------------------------------
# GET /status  (Server-Sent Events)
# ---------------------------------------------------------------------------


@router.get("/status")
async def status_stream(request: Request) -> EventSourceResponse:
    """Stream StatusEvents as Server-Sent Events.

    Each SSE message has:
    * ``event`` — the turn state (e.g. ``listening``)
    * ``data``  — the full StatusEvent serialised as JSON

    The subscription is cleaned up when the client disconnects.
    """
    status_bus = _get_status_bus(request)

    async def _generate():
        queue = status_bus.subscribe()
        try:
            while True:
                if await request.is_disconnected():
                    logger.debug("Status SSE client disconnected")
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=15.0)
                except asyncio.TimeoutError:
                    # Keep-alive comment (": ping") for proxies and clients.
                    yield {"comment": "ping"}
                    continue
                yield {"event": event.state.value, "data": event.model_dump_json()}
        except asyncio.CancelledError:
            logger.debug("Status SSE stream cancelled")
        finally:
            status_bus.unsubscribe(queue)
            logger.debug("Status SSE subscriber cleaned up")

    return EventSourceResponse(_generate())
