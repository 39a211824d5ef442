"""Whisper transcription HTTP client with health checking and graceful degradation.

Sends one recorded speech segment to the Whisper transcription API and
returns its text. Failures are logged and reported as ``None`` so the
capture backend can decide which error event to emit.
"""

import io
import logging
import time
import wave

import httpx

from languagebot.config import (
    AUDIO_SAMPLE_RATE,
    STT_API_KEY,
    STT_BASE_URL,
    STT_HEALTH_CHECK_INTERVAL,
    STT_MODEL,
    STT_TIMEOUT,
)
from languagebot.languages import primary_subtag

logger = logging.getLogger(__name__)


class STTClient:
    """Whisper API HTTP client with health checking and graceful degradation."""

    def __init__(self) -> None:
        self._available: bool = False
        self._last_health_check: float = 0.0
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        """Initialize the HTTP client and run initial health check."""
        if not STT_API_KEY:
            self._available = False
            logger.info("No STT API key — transcription disabled")
            return

        self._client = httpx.AsyncClient(
            base_url=STT_BASE_URL,
            timeout=STT_TIMEOUT,
            headers={"Authorization": f"Bearer {STT_API_KEY}"},
        )
        await self._check_health()

    async def stop(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        self._available = False

    @property
    def is_available(self) -> bool:
        """Whether the Whisper API is currently available."""
        return self._available

    async def transcribe(self, audio_bytes: bytes, language_tag: str) -> str | None:
        """Transcribe PCM audio spoken in *language_tag*.

        Returns the stripped transcript (possibly empty when nothing was
        recognized), or None on any failure (network, auth, timeout).
        """
        await self._maybe_recheck_health()

        if not self._available or not self._client:
            return None

        try:
            response = await self._client.post(
                "/v1/audio/transcriptions",
                data={"model": STT_MODEL, "language": primary_subtag(language_tag)},
                files={"file": ("segment.wav", self._wrap_wav(audio_bytes), "audio/wav")},
            )
            response.raise_for_status()
            transcript = response.json().get("text", "").strip()
            logger.debug("STT transcript: %s", transcript)
            return transcript
        except Exception:
            logger.warning("STT transcription failed", exc_info=True)
            return None

    async def _check_health(self) -> None:
        """Validate API key via GET /v1/models."""
        self._last_health_check = time.monotonic()
        if not self._client:
            self._available = False
            return
        try:
            resp = await self._client.get("/v1/models")
            if resp.status_code == 200:
                self._available = True
                logger.info("Whisper available at %s (model: %s)", STT_BASE_URL, STT_MODEL)
            else:
                self._available = False
                logger.warning(
                    "Whisper API returned status %d — transcription unavailable",
                    resp.status_code,
                )
        except (httpx.ConnectError, httpx.TimeoutException, OSError) as exc:
            self._available = False
            logger.warning(
                "Whisper API not available at %s — transcription disabled: %s",
                STT_BASE_URL,
                exc,
            )

    async def _maybe_recheck_health(self) -> None:
        """Re-check Whisper availability if enough time has passed."""
        if not self._available:
            elapsed = time.monotonic() - self._last_health_check
            if elapsed >= STT_HEALTH_CHECK_INTERVAL:
                await self._check_health()

    @staticmethod
    def _wrap_wav(pcm_bytes: bytes, sample_rate: int = AUDIO_SAMPLE_RATE) -> io.BytesIO:
        """Wrap raw PCM int16 bytes in a WAV header."""
        buf = io.BytesIO()
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(1)
            wf.setsampwidth(2)  # 16-bit
            wf.setframerate(sample_rate)
            wf.writeframes(pcm_bytes)
        buf.seek(0)
        return buf
