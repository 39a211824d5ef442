"""Pydantic models and enums for practice sessions."""

import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from languagebot.config import DEFAULT_LANGUAGE_TAG
from languagebot.languages import language_name


class Speaker(str, Enum):
    """Who produced an utterance."""

    AGENT = "agent"
    HUMAN = "human"


class TurnState(str, Enum):
    """The single turn-taking state of a session."""

    AGENT_SPEAKING = "agent_speaking"
    LISTENING = "listening"
    IDLE = "idle"
    ERROR = "error"


class ErrorKind(str, Enum):
    """Error kinds interpreted by the turn controller."""

    PERMISSION_DENIED = "permission_denied"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TRANSIENT = "transient"
    OTHER = "other"
    AGENT_UNAVAILABLE = "agent_unavailable"
    OUTPUT_UNAVAILABLE = "output_unavailable"


class SessionConfig(BaseModel):
    """Per-session settings, fixed once the session starts.

    ``required_items`` accepts either a list or the raw newline-separated
    text typed into the setup form; entries are stripped, blank lines
    dropped, and case-insensitive duplicates collapsed to the first one.
    """

    model_config = ConfigDict(frozen=True)

    language_tag: str = DEFAULT_LANGUAGE_TAG
    required_items: list[str] = Field(default_factory=list)
    scenario: str
    voice_hint: str | None = None

    @field_validator("required_items", mode="before")
    @classmethod
    def _split_items(cls, value):
        if isinstance(value, str):
            value = value.splitlines()
        items: list[str] = []
        seen: set[str] = set()
        for item in value:
            if isinstance(item, str):
                item = item.strip()
                if not item or item.casefold() in seen:
                    continue
                seen.add(item.casefold())
            items.append(item)
        return items

    @field_validator("scenario")
    @classmethod
    def _scenario_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("scenario must not be blank")
        return value

    @field_validator("language_tag")
    @classmethod
    def _tag_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("language_tag must not be blank")
        return value

    @property
    def language_name(self) -> str:
        return language_name(self.language_tag)


class Utterance(BaseModel):
    """One recorded line of speech. ``sequence`` is assigned by the store."""

    model_config = ConfigDict(frozen=True)

    speaker: Speaker
    text: str
    sequence: int


class StatusEvent(BaseModel):
    """A human-readable status update published by the turn controller."""

    state: TurnState
    status: str
    error_kind: ErrorKind | None = None
    timestamp: float = Field(default_factory=time.time)
