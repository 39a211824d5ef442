"""Tests for languagebot.tts.elevenlabs_client — ElevenLabs TTS HTTP client."""

import time
from unittest.mock import AsyncMock, patch

import httpx

from languagebot.tts.elevenlabs_client import ElevenLabsClient


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mock_health_response(status_code: int = 200) -> httpx.Response:
    """Build a fake httpx.Response for GET /v1/user."""
    return httpx.Response(
        status_code=status_code,
        request=httpx.Request("GET", "/v1/user"),
    )


def _mock_synthesize_response(content: bytes = b"\x00\x01\x02\x03") -> httpx.Response:
    """Build a fake httpx.Response for POST /v1/text-to-speech/{voice_id}."""
    return httpx.Response(
        status_code=200,
        content=content,
        request=httpx.Request("POST", "/v1/text-to-speech/test-voice"),
    )


def _available_client(**post_kwargs) -> ElevenLabsClient:
    client = ElevenLabsClient()
    client._available = True
    client._client = AsyncMock()
    client._client.post = AsyncMock(**post_kwargs)
    return client


# ---------------------------------------------------------------------------
# TestStartup — initialization and shutdown
# ---------------------------------------------------------------------------


class TestStartup:
    """Tests for start() and stop() lifecycle."""

    async def test_start_no_api_key(self, monkeypatch):
        """When API key is empty, start() should not create a client."""
        monkeypatch.setattr("languagebot.tts.elevenlabs_client.ELEVENLABS_API_KEY", "")
        client = ElevenLabsClient()
        await client.start()

        assert client.is_available is False
        assert client._client is None

    async def test_start_with_api_key(self, monkeypatch):
        monkeypatch.setattr(
            "languagebot.tts.elevenlabs_client.ELEVENLABS_API_KEY", "test-key"
        )

        with patch("languagebot.tts.elevenlabs_client.httpx.AsyncClient") as MockClient:
            instance = AsyncMock()
            instance.get = AsyncMock(return_value=_mock_health_response(200))
            MockClient.return_value = instance

            client = ElevenLabsClient()
            await client.start()

            assert client.is_available is True
            assert client._client is instance
            assert MockClient.call_args.kwargs["headers"] == {"xi-api-key": "test-key"}

    async def test_start_health_check_fails(self, monkeypatch):
        """When health check returns 401, should not be available."""
        monkeypatch.setattr(
            "languagebot.tts.elevenlabs_client.ELEVENLABS_API_KEY", "bad-key"
        )

        with patch("languagebot.tts.elevenlabs_client.httpx.AsyncClient") as MockClient:
            instance = AsyncMock()
            instance.get = AsyncMock(return_value=_mock_health_response(401))
            MockClient.return_value = instance

            client = ElevenLabsClient()
            await client.start()

            assert client.is_available is False

    async def test_start_health_check_connection_error(self, monkeypatch):
        monkeypatch.setattr(
            "languagebot.tts.elevenlabs_client.ELEVENLABS_API_KEY", "test-key"
        )

        with patch("languagebot.tts.elevenlabs_client.httpx.AsyncClient") as MockClient:
            instance = AsyncMock()
            instance.get = AsyncMock(side_effect=httpx.ConnectError("Connection refused"))
            MockClient.return_value = instance

            client = ElevenLabsClient()
            await client.start()

            assert client.is_available is False

    async def test_stop_closes_client(self):
        client = _available_client()
        instance = client._client

        await client.stop()

        instance.aclose.assert_awaited_once()
        assert client._client is None

    async def test_stop_without_start(self):
        """stop() on a fresh instance should not raise."""
        await ElevenLabsClient().stop()


# ---------------------------------------------------------------------------
# TestSynthesize — synthesize() behavior
# ---------------------------------------------------------------------------


class TestSynthesize:
    """Tests for synthesize() method."""

    async def test_synthesize_success(self):
        pcm_bytes = b"\x00\x01\x02\x03\x04\x05"
        client = _available_client(return_value=_mock_synthesize_response(pcm_bytes))

        result = await client.synthesize("你好！", "zh-CN")

        assert result == pcm_bytes

    async def test_synthesize_default_voice_url(self, monkeypatch):
        monkeypatch.setattr("languagebot.tts.elevenlabs_client.TTS_VOICE_ID", "voice-abc-123")
        client = _available_client(return_value=_mock_synthesize_response(b"\x00"))

        await client.synthesize("你好！", "zh-CN")

        assert client._client.post.call_args.args[0] == "/v1/text-to-speech/voice-abc-123"

    async def test_synthesize_voice_hint_overrides_default(self, monkeypatch):
        monkeypatch.setattr("languagebot.tts.elevenlabs_client.TTS_VOICE_ID", "voice-abc-123")
        client = _available_client(return_value=_mock_synthesize_response(b"\x00"))

        await client.synthesize("你好！", "zh-CN", voice_id="mandarin-female")

        assert client._client.post.call_args.args[0] == "/v1/text-to-speech/mandarin-female"

    async def test_synthesize_body(self, monkeypatch):
        """Body carries the text, model, language and slowed speaking rate."""
        monkeypatch.setattr("languagebot.tts.elevenlabs_client.TTS_MODEL", "eleven_turbo_v2_5")
        monkeypatch.setattr("languagebot.tts.elevenlabs_client.TTS_SPEED", 0.85)
        client = _available_client(return_value=_mock_synthesize_response(b"\x00"))

        await client.synthesize("慢慢说", "zh-CN")

        body = client._client.post.call_args.kwargs["json"]
        assert body == {
            "text": "慢慢说",
            "model_id": "eleven_turbo_v2_5",
            "language_code": "zh",
            "voice_settings": {"speed": 0.85},
        }

    async def test_synthesize_requests_pcm_at_sample_rate(self, monkeypatch):
        monkeypatch.setattr("languagebot.tts.elevenlabs_client.AUDIO_SAMPLE_RATE", 16000)
        client = _available_client(return_value=_mock_synthesize_response(b"\x00"))

        await client.synthesize("你好", "zh-CN")

        params = client._client.post.call_args.kwargs["params"]
        assert params == {"output_format": "pcm_16000"}

    async def test_synthesize_returns_none_when_unavailable(self):
        client = ElevenLabsClient()
        client._client = AsyncMock()
        client._last_health_check = time.monotonic()

        assert await client.synthesize("你好", "zh-CN") is None
        client._client.post.assert_not_awaited()

    async def test_synthesize_returns_none_on_http_error(self):
        error = httpx.HTTPStatusError(
            "Server Error",
            request=httpx.Request("POST", "/v1/text-to-speech/test-voice"),
            response=httpx.Response(500),
        )
        client = _available_client(side_effect=error)

        assert await client.synthesize("你好", "zh-CN") is None

    async def test_synthesize_returns_none_on_timeout(self):
        client = _available_client(side_effect=httpx.TimeoutException("timed out"))

        assert await client.synthesize("你好", "zh-CN") is None


# ---------------------------------------------------------------------------
# TestHealthCheck
# ---------------------------------------------------------------------------


class TestHealthCheck:
    async def test_recheck_when_elapsed(self):
        client = ElevenLabsClient()
        client._client = AsyncMock()
        client._client.get = AsyncMock(return_value=_mock_health_response(200))
        client._last_health_check = time.monotonic() - 120.0

        await client._maybe_recheck_health()

        client._client.get.assert_awaited_once()
        assert client.is_available is True

    async def test_no_recheck_when_available(self):
        client = _available_client()
        client._last_health_check = 0.0

        await client._maybe_recheck_health()

        client._client.get.assert_not_awaited()
