"""Practice sessions: transcript, turn-taking state machine, retry policy.

The TurnController lives in ``languagebot.session.turn_controller``; it is
not re-exported here because it depends on the agent port, which itself
depends on the session types.
"""

from languagebot.session.retry import RetryPolicy
from languagebot.session.transcript import TranscriptFrozenError, TranscriptStore
from languagebot.session.types import (
    ErrorKind,
    SessionConfig,
    Speaker,
    StatusEvent,
    TurnState,
    Utterance,
)

__all__ = [
    "ErrorKind",
    "RetryPolicy",
    "SessionConfig",
    "Speaker",
    "StatusEvent",
    "TranscriptFrozenError",
    "TranscriptStore",
    "TurnState",
    "Utterance",
]
