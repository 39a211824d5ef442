"""Tests for languagebot.server — FastAPI routes, session manager and SSE stream.

Uses httpx.AsyncClient with ASGITransport for async testing.
The app and async_client fixtures are defined in conftest.py; the session
runs against the fake capture/output ports and a mocked dialogue agent.
"""

import asyncio
import json

import httpx
import pytest

from conftest import settle
from languagebot import __version__
from languagebot.agent.provider import AgentUnavailableError
from languagebot.events.event_bus import EventBus
from languagebot.session.turn_controller import SessionStateError
from languagebot.session.types import SessionConfig, TurnState

SESSION_BODY = {
    "language_tag": "zh-CN",
    "required_items": "你好\n谢谢\n再见",
    "scenario": "Ordering food at a restaurant",
}


async def _start_and_listen(client: httpx.AsyncClient, output) -> dict:
    response = await client.post("/session", json=SESSION_BODY)
    assert response.status_code == 200
    output.complete()
    await settle()
    return response.json()


# ---------------------------------------------------------------------------
# POST /session
# ---------------------------------------------------------------------------


class TestStartSession:
    """Tests for the POST /session endpoint."""

    async def test_start_returns_opening_line(self, async_client, agent):
        response = await async_client.post("/session", json=SESSION_BODY)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["active"] is True
        assert body["state"] == "agent_speaking"
        assert body["transcript"] == [
            {"speaker": "agent", "text": "你好！欢迎光临。", "sequence": 1}
        ]
        config = agent.next_utterance.await_args.args[1]
        assert config.required_items == ["你好", "谢谢", "再见"]

    async def test_blank_scenario_rejected(self, async_client):
        response = await async_client.post(
            "/session", json={**SESSION_BODY, "scenario": "  "}
        )
        assert response.status_code == 422

    async def test_agent_failure_reported_in_state(self, async_client, agent):
        agent.next_utterance.side_effect = AgentUnavailableError("down")

        body = (await async_client.post("/session", json=SESSION_BODY)).json()

        assert body["state"] == "error"
        assert body["error_kind"] == "agent_unavailable"
        assert body["transcript"] == []

    async def test_new_session_ends_previous(self, async_client, session_manager):
        await async_client.post("/session", json=SESSION_BODY)
        first = session_manager.controller

        await async_client.post("/session", json=SESSION_BODY)

        assert first.is_active is False
        assert first.state == TurnState.IDLE
        assert session_manager.controller is not first


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------


class TestTurns:
    async def test_end_turn_records_human_line(self, async_client, capture, output):
        await _start_and_listen(async_client, output)
        capture.final("你好")
        await settle()

        response = await async_client.post("/session/end-turn")

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "agent_speaking"
        assert [u["speaker"] for u in body["transcript"]] == ["agent", "human", "agent"]
        assert body["transcript"][1]["text"] == "你好"

    async def test_end_turn_without_session_conflicts(self, async_client):
        response = await async_client.post("/session/end-turn")

        assert response.status_code == 409
        assert response.json() == {"status": "error", "reason": "no active session"}

    async def test_retry_after_agent_failure(self, async_client, agent):
        agent.next_utterance.side_effect = [AgentUnavailableError("down"), "欢迎！"]
        await async_client.post("/session", json=SESSION_BODY)

        body = (await async_client.post("/session/retry")).json()

        assert body["status"] == "ok"
        assert body["state"] == "agent_speaking"
        assert body["transcript"][0]["text"] == "欢迎！"

    async def test_retry_when_not_in_error_is_ignored(self, async_client, output):
        await _start_and_listen(async_client, output)

        body = (await async_client.post("/session/retry")).json()

        assert body["status"] == "ignored"
        assert body["state"] == "listening"

    async def test_get_session(self, async_client, capture, output):
        await _start_and_listen(async_client, output)
        capture.interim("谢")
        await settle()

        body = (await async_client.get("/session")).json()

        assert body["state"] == "listening"
        assert body["status"] == "You: 谢"
        assert body["interim_text"] == "谢"

    async def test_get_session_before_start(self, async_client):
        response = await async_client.get("/session")
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# POST /session/end and GET /report
# ---------------------------------------------------------------------------


class TestEndSession:
    async def test_end_returns_score_report(self, async_client, capture, output):
        await _start_and_listen(async_client, output)
        capture.final("你好，谢谢")
        await settle()
        await async_client.post("/session/end-turn")

        response = await async_client.post("/session/end")

        assert response.status_code == 200
        body = response.json()
        assert body["summary"] == "You used 2 out of 3 required words/grammar structures."
        assert body["used_count"] == 2
        assert body["coverage"]["used_items"] == ["你好", "谢谢"]
        assert body["feedback_status"] == "ready"
        assert body["feedback"] == "Good job using the greetings."
        assert "<mark>你好</mark>，<mark>谢谢</mark>" in body["transcript_html"]

    async def test_feedback_failure_still_returns_report(
        self, async_client, agent, output
    ):
        agent.feedback.side_effect = AgentUnavailableError("quota")
        await _start_and_listen(async_client, output)

        body = (await async_client.post("/session/end")).json()

        assert body["feedback_status"] == "unavailable"
        assert body["feedback"] is None
        assert body["used_count"] == 0

    async def test_report_available_after_end(self, async_client, output):
        await _start_and_listen(async_client, output)
        await async_client.post("/session/end")

        response = await async_client.get("/report")

        assert response.status_code == 200
        assert response.json()["summary"].startswith("You used 0 out of 3")

    async def test_report_before_end(self, async_client):
        assert (await async_client.get("/report")).status_code == 404

    async def test_end_twice_conflicts(self, async_client, output):
        await _start_and_listen(async_client, output)
        await async_client.post("/session/end")

        response = await async_client.post("/session/end")

        assert response.status_code == 409

    async def test_session_view_after_end(self, async_client, output):
        await _start_and_listen(async_client, output)
        await async_client.post("/session/end")

        body = (await async_client.get("/session")).json()

        assert body["active"] is False
        assert body["state"] == "idle"
        assert body["status"] == "Session ended."


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------


class TestHealth:
    async def test_health_before_session(self, async_client):
        response = await async_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["version"] == __version__
        assert body["agent_available"] is True
        assert body["mic_available"] is True
        assert body["stt_available"] is True
        assert body["tts_available"] is True
        assert body["audio_available"] is False
        assert body["tts_provider"] == "fake"
        assert body["session_state"] is None
        assert body["status_subscribers"] == 0

    async def test_health_reports_session_state(self, async_client, output):
        await _start_and_listen(async_client, output)

        body = (await async_client.get("/health")).json()

        assert body["session_state"] == "listening"


# ---------------------------------------------------------------------------
# SessionManager
# ---------------------------------------------------------------------------


class TestSessionManager:
    async def test_operations_require_active_session(self, session_manager):
        with pytest.raises(SessionStateError):
            await session_manager.end_turn()
        with pytest.raises(SessionStateError):
            await session_manager.retry_turn()
        with pytest.raises(SessionStateError):
            await session_manager.end_session()

    async def test_shutdown_ends_session_without_report(self, session_manager):
        controller = await session_manager.start_session(
            SessionConfig(scenario="Small talk")
        )

        await session_manager.shutdown()

        assert controller.is_active is False
        assert session_manager.last_report is None

    async def test_start_clears_previous_report(self, session_manager):
        await session_manager.start_session(SessionConfig(scenario="Small talk"))
        await session_manager.end_session()
        assert session_manager.last_report is not None

        await session_manager.start_session(SessionConfig(scenario="Small talk"))

        assert session_manager.last_report is None


# ---------------------------------------------------------------------------
# GET /status (SSE stream)
# ---------------------------------------------------------------------------


class TestStatusStream:
    """Tests for the GET /status SSE endpoint.

    EventSourceResponse holds the ASGI send loop open until the client
    disconnects, so the stream is not read end to end here. These tests
    cover the bus mechanism the handler relies on and the route registration.
    """

    async def test_status_subscriber_receives_session_updates(
        self, async_client, status_bus: EventBus
    ):
        queue = status_bus.subscribe()

        await async_client.post("/session", json=SESSION_BODY)

        received = await asyncio.wait_for(queue.get(), timeout=2.0)
        data = json.loads(received.model_dump_json())
        assert data["state"] == "agent_speaking"
        assert data["status"] == "Chatbot is speaking..."
        assert data["error_kind"] is None

    async def test_status_route_registered(self, app):
        route_paths = [route.path for route in app.routes]
        assert "/status" in route_paths


def test_create_app_wires_state():
    from languagebot.server.app import create_app

    app = create_app()

    assert app.state.session_manager is not None
    assert app.state.status_bus is not None
    paths = {route.path for route in app.routes}
    assert {"/session", "/session/end", "/report", "/health", "/status"} <= paths
