"""Abstract base class for speech output backends.

The turn controller speaks agent replies through this interface without
knowing which synthesizer is active. Backends report the outcome of every
``speak()`` call as exactly one event on their ``events`` channel, tagged
with the caller's utterance id, and never raise from ``speak()``.
"""

from abc import ABC, abstractmethod

from languagebot.events.event_bus import EventBus
from languagebot.tts.types import OutputEvent


class SpeechOutputPort(ABC):
    """Synthesize and play text, one audible utterance at a time."""

    def __init__(self) -> None:
        self._events: EventBus[OutputEvent] = EventBus()

    @property
    def events(self) -> EventBus[OutputEvent]:
        """Channel carrying OutputCompleted / OutputFailed events."""
        return self._events

    @abstractmethod
    async def speak(
        self,
        text: str,
        language_tag: str,
        voice_hint: str | None = None,
        *,
        utterance_id: str,
    ) -> None:
        """Start speaking *text*; cancels any playback still in progress.

        Returns once playback has been scheduled; completion arrives as an
        event tagged with *utterance_id*.
        """

    @abstractmethod
    async def cancel(self) -> None:
        """Stop any playback in progress. Safe to call when idle."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name for health/status display."""
