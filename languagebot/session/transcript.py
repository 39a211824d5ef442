"""Append-only transcript of a practice session."""

import logging
from typing import Iterator

from languagebot.session.types import Speaker, Utterance

logger = logging.getLogger(__name__)

_FIRST_SEQUENCE = 1


class TranscriptFrozenError(RuntimeError):
    """Raised when appending to a transcript after the session ended."""


class TranscriptStore:
    """Ordered, append-only sequence of utterances.

    The store assigns ``sequence`` numbers itself, starting at 1 and
    strictly increasing, so producers cannot reorder history. Once
    :meth:`freeze` is called the transcript becomes read-only input for
    scoring.
    """

    def __init__(self) -> None:
        self._utterances: list[Utterance] = []
        self._next_sequence: int = _FIRST_SEQUENCE
        self._frozen: bool = False

    def append(self, speaker: Speaker, text: str) -> Utterance:
        """Record *text* spoken by *speaker* and return the new utterance."""
        if self._frozen:
            raise TranscriptFrozenError("transcript is frozen; session has ended")
        utterance = Utterance(speaker=speaker, text=text, sequence=self._next_sequence)
        self._utterances.append(utterance)
        self._next_sequence += 1
        logger.debug("Appended %s utterance #%d", speaker.value, utterance.sequence)
        return utterance

    def freeze(self) -> None:
        self._frozen = True

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def snapshot(self) -> tuple[Utterance, ...]:
        """Immutable view of the utterances recorded so far."""
        return tuple(self._utterances)

    def human_utterances(self) -> list[Utterance]:
        return [u for u in self._utterances if u.speaker == Speaker.HUMAN]

    def human_text(self) -> str:
        """All human utterances joined by newlines (one utterance per line)."""
        return "\n".join(u.text for u in self.human_utterances())

    def __len__(self) -> int:
        return len(self._utterances)

    def __iter__(self) -> Iterator[Utterance]:
        return iter(self.snapshot())
