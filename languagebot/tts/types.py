"""Pydantic models for the speech output subsystem."""

import time

from pydantic import BaseModel, Field


class OutputCompleted(BaseModel):
    """Playback for ``utterance_id`` finished (or was cut short by a newer call)."""

    utterance_id: str
    interrupted: bool = False
    timestamp: float = Field(default_factory=time.time)


class OutputFailed(BaseModel):
    """Synthesis or playback for ``utterance_id`` failed."""

    utterance_id: str
    message: str = ""
    timestamp: float = Field(default_factory=time.time)


OutputEvent = OutputCompleted | OutputFailed
