from languagebot.tts.elevenlabs_client import ElevenLabsClient
from languagebot.tts.provider import SpeechOutputPort
from languagebot.tts.types import OutputCompleted, OutputFailed

__all__ = ["ElevenLabsClient", "OutputCompleted", "OutputFailed", "SpeechOutputPort"]
