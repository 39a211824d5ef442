"""Abstract base class for speech capture backends.

The turn controller drives capture without knowing which backend is
active. Backends report recognized text and failures as events on their
``events`` channel; they never raise from ``start()`` or ``stop()``.
"""

from abc import ABC, abstractmethod

from languagebot.events.event_bus import EventBus
from languagebot.stt.types import CaptureEvent


class SpeechCapturePort(ABC):
    """Continuous speech-to-text capture for one turn at a time.

    ``start()`` begins a capture session that emits ordered
    ``CaptureFragment`` events and, on failure, one terminal
    ``CaptureError``. ``stop()`` is idempotent and safe before ``start()``.
    """

    def __init__(self) -> None:
        self._events: EventBus[CaptureEvent] = EventBus()

    @property
    def events(self) -> EventBus[CaptureEvent]:
        """Channel carrying fragments and terminal errors."""
        return self._events

    @abstractmethod
    async def start(self, language_tag: str) -> None:
        """Begin capturing speech in *language_tag*."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop capturing. Fragments already recognized are emitted first."""

    @property
    @abstractmethod
    def is_capturing(self) -> bool:
        """Whether a capture session is currently running."""
