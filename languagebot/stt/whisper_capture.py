"""Speech capture backend: microphone segments transcribed by Whisper.

Each speech segment detected on the microphone is transcribed and
emitted as one final fragment. Whisper has no partial results, so the
only interim fragment is a placeholder published when speech onset is
detected, letting the status line show that the speaker was heard.

Recording and transcription run as two tasks joined by a queue: the
microphone stream stays open while earlier segments are transcribed.
"""

import asyncio
import logging

from languagebot.stt.microphone import MicrophoneCapture, MicrophoneError
from languagebot.stt.provider import SpeechCapturePort
from languagebot.stt.stt_client import STTClient
from languagebot.stt.types import CaptureError, CaptureErrorKind, CaptureFragment

logger = logging.getLogger(__name__)

_ONSET_PLACEHOLDER = "..."


class WhisperSpeechCapture(SpeechCapturePort):
    """Continuous capture built from MicrophoneCapture and STTClient."""

    def __init__(self) -> None:
        super().__init__()
        self._microphone = MicrophoneCapture()
        self._stt_client = STTClient()
        self._record_task: asyncio.Task | None = None
        self._transcribe_task: asyncio.Task | None = None

    async def open(self) -> None:
        """Probe the microphone and the transcription API."""
        await self._microphone.start()
        await self._stt_client.start()
        logger.info(
            "Whisper capture ready (mic=%s, stt=%s)",
            self._microphone.is_available,
            self._stt_client.is_available,
        )

    async def close(self) -> None:
        """Stop any running capture and release sub-components in reverse order."""
        await self.stop()
        await self._stt_client.stop()
        await self._microphone.stop()

    @property
    def mic_available(self) -> bool:
        return self._microphone.is_available

    @property
    def stt_available(self) -> bool:
        return self._stt_client.is_available

    @property
    def is_capturing(self) -> bool:
        return self._transcribe_task is not None and not self._transcribe_task.done()

    async def start(self, language_tag: str) -> None:
        await self.stop()

        if not self._microphone.is_available:
            self._events.publish(
                CaptureError(
                    kind=CaptureErrorKind.PERMISSION_DENIED,
                    message="Microphone is not accessible",
                )
            )
            return
        if not self._stt_client.is_available:
            self._events.publish(
                CaptureError(
                    kind=CaptureErrorKind.SERVICE_UNAVAILABLE,
                    message="Transcription service is unavailable",
                )
            )
            return

        self._microphone.arm()
        segments: asyncio.Queue = asyncio.Queue()
        self._record_task = asyncio.create_task(self._record_loop(segments))
        self._transcribe_task = asyncio.create_task(
            self._transcribe_loop(segments, language_tag)
        )
        logger.debug("Capture started (language=%s)", language_tag)

    async def stop(self) -> None:
        if self._record_task is None and self._transcribe_task is None:
            return
        # Signal the microphone thread first; segments already recorded are
        # still transcribed before stop() returns.
        self._microphone.cancel()
        record_task, self._record_task = self._record_task, None
        transcribe_task, self._transcribe_task = self._transcribe_task, None
        for task in (record_task, transcribe_task):
            if task is None or task.done():
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug("Capture stopped")

    def _on_speech_start(self) -> None:
        self._events.publish(CaptureFragment(text=_ONSET_PLACEHOLDER, is_final=False))

    async def _record_loop(self, segments: asyncio.Queue) -> None:
        """Feed recorded segments into *segments*, then an end marker."""
        end: CaptureError | None = None
        try:
            await self._microphone.record(
                segments.put_nowait, on_speech_start=self._on_speech_start
            )
        except MicrophoneError as exc:
            end = CaptureError(kind=CaptureErrorKind.TRANSIENT, message=str(exc))
        except asyncio.CancelledError:
            logger.debug("Record loop cancelled")
            raise
        except Exception as exc:
            logger.warning("Record loop failed", exc_info=True)
            end = CaptureError(kind=CaptureErrorKind.OTHER, message=str(exc))
        finally:
            segments.put_nowait(end)

    async def _transcribe_loop(self, segments: asyncio.Queue, language_tag: str) -> None:
        """Transcribe → emit, in recording order, until the end marker or an error."""
        try:
            while True:
                item = await segments.get()
                if item is None:
                    return
                if isinstance(item, CaptureError):
                    self._events.publish(item)
                    return

                text = await self._stt_client.transcribe(item, language_tag)
                if text is None:
                    self._microphone.cancel()
                    self._events.publish(
                        CaptureError(
                            kind=CaptureErrorKind.SERVICE_UNAVAILABLE,
                            message="Transcription failed",
                        )
                    )
                    return
                if text:
                    self._events.publish(CaptureFragment(text=text, is_final=True))
        except asyncio.CancelledError:
            logger.debug("Transcribe loop cancelled")
            raise
        except Exception as exc:
            logger.warning("Capture loop failed", exc_info=True)
            self._microphone.cancel()
            self._events.publish(
                CaptureError(kind=CaptureErrorKind.OTHER, message=str(exc))
            )
