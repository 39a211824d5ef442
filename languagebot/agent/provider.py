"""Abstract base class for dialogue agents.

The turn controller asks the agent for its next line and the scoring
engine asks it for feedback. Both calls are plain request/response; the
agent never retries internally and every failure surfaces as
``AgentUnavailableError``.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from languagebot.session.types import SessionConfig, Utterance


class AgentUnavailableError(RuntimeError):
    """The dialogue agent could not produce a reply."""


class DialogueAgentPort(ABC):
    """Request/response conversation partner."""

    @abstractmethod
    async def next_utterance(
        self, transcript: Sequence[Utterance], config: SessionConfig
    ) -> str:
        """Return the agent's next line given the conversation so far.

        Raises AgentUnavailableError on any failure. Safe to call again
        with the same transcript.
        """

    @abstractmethod
    async def feedback(self, transcript_text: str, config: SessionConfig) -> str:
        """Return plain-text feedback on the human's side of the conversation.

        Raises AgentUnavailableError on any failure.
        """
