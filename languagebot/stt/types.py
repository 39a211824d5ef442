"""Pydantic models and enums for the speech capture subsystem."""

import time
from enum import Enum

from pydantic import BaseModel, Field


class CaptureErrorKind(str, Enum):
    """Terminal error kinds a capture backend may report."""

    PERMISSION_DENIED = "permission_denied"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TRANSIENT = "transient"
    OTHER = "other"


class CaptureFragment(BaseModel):
    """Recognized text for the current turn.

    Final fragments are definitive and are concatenated in emission order.
    Interim fragments are advisory display text only.
    """

    text: str
    is_final: bool
    timestamp: float = Field(default_factory=time.time)


class CaptureError(BaseModel):
    """Terminal error for the running capture session."""

    kind: CaptureErrorKind
    message: str = ""
    timestamp: float = Field(default_factory=time.time)


CaptureEvent = CaptureFragment | CaptureError
