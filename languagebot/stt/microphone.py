"""Microphone capture cut into speech segments by energy-based voice activity detection."""

import asyncio
import logging
import threading
from typing import Callable

import numpy as np
import sounddevice as sd

from languagebot.config import (
    AUDIO_SAMPLE_RATE,
    STT_MAX_SEGMENT_DURATION,
    STT_SILENCE_DURATION,
    STT_SILENCE_THRESHOLD,
)

logger = logging.getLogger(__name__)

_CHUNK_DURATION = 0.1  # seconds per stream read


class MicrophoneError(RuntimeError):
    """The input stream failed while recording."""


class MicrophoneCapture:
    """Captures audio from the default input device using sounddevice.

    Probes for a device at start and degrades gracefully if none is
    present. A recording keeps one input stream open until cancelled and
    hands off each speech segment as soon as it ends, so the caller can
    process a segment while the next one is being recorded. A cancelled
    segment that already contains speech is handed off rather than
    discarded, so ending a turn mid-sentence keeps what was said.
    """

    def __init__(self) -> None:
        self._available: bool = False
        self._listening: bool = False
        self._cancel = threading.Event()

    async def start(self) -> None:
        """Probe for input device. No-op if unavailable."""
        try:
            sd.query_devices(kind="input")
            self._available = True
            logger.info("Microphone input device detected — capture enabled")
        except Exception:
            self._available = False
            logger.warning("No microphone input device — capture disabled")

    async def stop(self) -> None:
        """Release resources."""
        self._cancel.set()
        self._listening = False
        self._available = False

    @property
    def is_available(self) -> bool:
        return self._available

    @property
    def is_listening(self) -> bool:
        return self._listening

    def arm(self) -> None:
        """Clear a previous cancellation before a new recording."""
        self._cancel.clear()

    def cancel(self) -> None:
        """Ask the running recording thread to finish as soon as possible."""
        self._cancel.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancel.is_set()

    async def record(
        self,
        on_segment: Callable[[bytes], None],
        *,
        on_speech_start: Callable[[], None] | None = None,
        silence_threshold: float | None = None,
        silence_duration: float | None = None,
        max_duration: float | None = None,
        sample_rate: int | None = None,
    ) -> int:
        """Record from one input stream until cancelled.

        Each speech segment (onset, then speech until silence or the
        maximum segment length) is passed to *on_segment* as PCM 16-bit
        mono bytes. Both callbacks run on the event loop; every segment
        callback is scheduled before this coroutine returns. Returns the
        number of segments handed off, 0 when the microphone is
        unavailable.

        Raises MicrophoneError when the stream fails. Speech recorded
        before the failure is handed off first.
        """
        if not self._available:
            return 0

        loop = asyncio.get_running_loop()

        def _segment(pcm: bytes) -> None:
            loop.call_soon_threadsafe(on_segment, pcm)

        def _onset() -> None:
            if on_speech_start is not None:
                loop.call_soon_threadsafe(on_speech_start)

        self._listening = True
        try:
            return await asyncio.to_thread(
                self._record_sync,
                _segment,
                _onset,
                silence_threshold or STT_SILENCE_THRESHOLD,
                silence_duration or STT_SILENCE_DURATION,
                max_duration or STT_MAX_SEGMENT_DURATION,
                sample_rate or AUDIO_SAMPLE_RATE,
            )
        finally:
            self._listening = False

    def _record_sync(
        self,
        emit: Callable[[bytes], None],
        notify: Callable[[], None],
        silence_threshold: float,
        silence_duration: float,
        max_duration: float,
        sample_rate: int,
    ) -> int:
        """Synchronous recording — runs in a worker thread.

        1. Open InputStream(samplerate, channels=1, dtype='int16') once
        2. Wait for speech onset (RMS > threshold)
        3. Record frames until silence_duration of quiet or max_duration,
           emit the segment and go back to step 2
        4. On cancellation, emit any segment in progress
        """
        frames: list[np.ndarray] = []
        chunk_samples = int(sample_rate * _CHUNK_DURATION)
        silence_elapsed = 0.0
        total_elapsed = 0.0
        emitted = 0

        def _flush() -> None:
            nonlocal frames, emitted
            if frames:
                emit(np.concatenate(frames).tobytes())
                emitted += 1
                frames = []

        try:
            with sd.InputStream(
                samplerate=sample_rate,
                channels=1,
                dtype="int16",
                blocksize=chunk_samples,
            ) as stream:
                while not self._cancel.is_set():
                    data, _overflowed = stream.read(chunk_samples)
                    loud = self._compute_rms(data) > silence_threshold

                    if not frames:
                        if loud:
                            frames.append(data.copy())
                            total_elapsed = _CHUNK_DURATION
                            silence_elapsed = 0.0
                            notify()
                        continue

                    frames.append(data.copy())
                    total_elapsed += _CHUNK_DURATION
                    if loud:
                        silence_elapsed = 0.0
                    else:
                        silence_elapsed += _CHUNK_DURATION

                    if silence_elapsed >= silence_duration or total_elapsed >= max_duration:
                        _flush()

        except Exception as exc:
            logger.warning("Microphone stream error", exc_info=True)
            _flush()
            raise MicrophoneError(str(exc)) from exc

        _flush()
        return emitted

    @staticmethod
    def _compute_rms(data: np.ndarray) -> float:
        """Compute RMS amplitude of int16 audio data, normalized to 0.0-1.0."""
        float_data = data.astype(np.float32) / 32768.0
        return float(np.sqrt(np.mean(float_data ** 2)))
