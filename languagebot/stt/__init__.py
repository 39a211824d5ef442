"""Speech capture: the capture port, its events, and the Whisper client.

The microphone-backed ``WhisperSpeechCapture`` lives in
``languagebot.stt.whisper_capture`` and is imported from there.
"""

from languagebot.stt.provider import SpeechCapturePort
from languagebot.stt.stt_client import STTClient
from languagebot.stt.types import CaptureError, CaptureErrorKind, CaptureFragment

__all__ = [
    "CaptureError",
    "CaptureErrorKind",
    "CaptureFragment",
    "STTClient",
    "SpeechCapturePort",
]
