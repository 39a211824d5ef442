"""Speech output backend: ElevenLabs synthesis played through sounddevice."""

import asyncio
import logging

from languagebot.tts.audio_player import AudioPlayer
from languagebot.tts.elevenlabs_client import ElevenLabsClient
from languagebot.tts.provider import SpeechOutputPort
from languagebot.tts.types import OutputCompleted, OutputFailed

logger = logging.getLogger(__name__)


class ElevenLabsSpeechOutput(SpeechOutputPort):
    """Synthesizes each agent reply and plays it, one utterance at a time.

    A new ``speak()`` call cancels the playback in progress; the cancelled
    call still reports ``OutputCompleted(interrupted=True)`` so every call
    produces exactly one event.
    """

    def __init__(self) -> None:
        super().__init__()
        self._elevenlabs = ElevenLabsClient()
        self._player = AudioPlayer()
        self._playback_task: asyncio.Task | None = None

    async def open(self) -> None:
        await self._elevenlabs.start()
        await self._player.start()
        logger.info(
            "Speech output ready (tts=%s, audio=%s)",
            self._elevenlabs.is_available,
            self._player.is_available,
        )

    async def close(self) -> None:
        await self.cancel()
        await self._player.stop()
        await self._elevenlabs.stop()

    @property
    def provider_name(self) -> str:
        return "elevenlabs"

    @property
    def tts_available(self) -> bool:
        return self._elevenlabs.is_available

    @property
    def audio_available(self) -> bool:
        return self._player.is_available

    async def speak(
        self,
        text: str,
        language_tag: str,
        voice_hint: str | None = None,
        *,
        utterance_id: str,
    ) -> None:
        await self.cancel()
        self._playback_task = asyncio.create_task(
            self._speak(text, language_tag, voice_hint, utterance_id)
        )

    async def cancel(self) -> None:
        task, self._playback_task = self._playback_task, None
        if task is None or task.done():
            return
        await self._player.interrupt()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _speak(
        self,
        text: str,
        language_tag: str,
        voice_hint: str | None,
        utterance_id: str,
    ) -> None:
        try:
            pcm = await self._elevenlabs.synthesize(text, language_tag, voice_hint)
            if not pcm:
                self._events.publish(
                    OutputFailed(utterance_id=utterance_id, message="Synthesis failed")
                )
                return
            finished = await self._player.play(pcm)
            self._events.publish(
                OutputCompleted(utterance_id=utterance_id, interrupted=not finished)
            )
            logger.info("Played utterance %s (%d bytes PCM)", utterance_id, len(pcm))
        except asyncio.CancelledError:
            self._events.publish(
                OutputCompleted(utterance_id=utterance_id, interrupted=True)
            )
            raise
        except Exception as exc:
            logger.warning("Playback failed for utterance %s", utterance_id, exc_info=True)
            self._events.publish(OutputFailed(utterance_id=utterance_id, message=str(exc)))
