"""Single-utterance audio player with interrupt support."""

import asyncio
import logging

import numpy as np
import sounddevice as sd

from languagebot.config import AUDIO_SAMPLE_RATE

logger = logging.getLogger(__name__)


class AudioPlayer:
    """Plays one PCM buffer at a time on the default output device.

    ``play()`` blocks (in a worker thread) until the buffer finishes or
    ``interrupt()`` stops the device. The session only ever has one agent
    utterance audible, so there is no queue.
    """

    def __init__(self) -> None:
        self._audio_available: bool = False
        self._playing: bool = False
        self._interrupted: bool = False

    async def start(self) -> None:
        """Probe for an output device. No-op if unavailable."""
        try:
            sd.query_devices(kind="output")
            self._audio_available = True
            logger.info("Audio output device detected — playback enabled")
        except Exception:
            self._audio_available = False
            logger.warning("No audio output device — playback disabled")

    async def stop(self) -> None:
        """Halt any in-progress playback and release the device."""
        await self.interrupt()
        self._audio_available = False

    @property
    def is_available(self) -> bool:
        """Whether an audio output device was detected at startup."""
        return self._audio_available

    @property
    def is_playing(self) -> bool:
        return self._playing

    async def play(self, pcm_bytes: bytes) -> bool:
        """Play int16 PCM bytes to the end.

        Returns True when the buffer played through, False when playback
        was interrupted. Raises if the device fails.
        """
        if not self._audio_available:
            raise RuntimeError("no audio output device")
        self._interrupted = False
        self._playing = True
        try:
            await asyncio.to_thread(self._play_sync, pcm_bytes)
        finally:
            self._playing = False
        return not self._interrupted

    async def interrupt(self) -> None:
        """Stop current playback, if any."""
        if not self._playing:
            return
        self._interrupted = True
        try:
            sd.stop()
        except Exception:
            logger.debug("sd.stop() failed during interrupt", exc_info=True)

    def _play_sync(self, pcm_bytes: bytes) -> None:
        """Convert int16 PCM bytes to float32 and play via sounddevice.

        This method is intended to run in a worker thread via
        ``asyncio.to_thread``.
        """
        audio_int16 = np.frombuffer(pcm_bytes, dtype=np.int16)
        audio_float32 = audio_int16.astype(np.float32) / 32768.0
        sd.play(audio_float32, samplerate=AUDIO_SAMPLE_RATE)
        sd.wait()
