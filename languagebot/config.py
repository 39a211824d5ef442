"""Configuration constants and helpers for LanguageBot."""

import os

DEFAULT_PORT: int = 7866


def get_port() -> int:
    """Return the server port from LANGUAGEBOT_PORT env var, or DEFAULT_PORT."""
    raw = os.environ.get("LANGUAGEBOT_PORT")
    if raw is not None:
        try:
            return int(raw)
        except ValueError:
            return DEFAULT_PORT
    return DEFAULT_PORT


LOG_LEVEL: str = os.environ.get("LANGUAGEBOT_LOG_LEVEL", "INFO")

# Fixed for the whole session; selects capture locale and synthesis voice.
DEFAULT_LANGUAGE_TAG: str = os.environ.get("LANGUAGEBOT_LANGUAGE", "zh-CN")


# --- Dialogue agent (Gemini generateContent) configuration ---

AGENT_API_KEY: str = os.environ.get("LANGUAGEBOT_AGENT_API_KEY", "")
AGENT_BASE_URL: str = os.environ.get(
    "LANGUAGEBOT_AGENT_BASE_URL", "https://generativelanguage.googleapis.com"
)
AGENT_MODEL: str = os.environ.get("LANGUAGEBOT_AGENT_MODEL", "gemini-2.5-flash-lite")
AGENT_TIMEOUT: float = float(os.environ.get("LANGUAGEBOT_AGENT_TIMEOUT", "20.0"))


# --- Whisper STT configuration ---

STT_API_KEY: str = os.environ.get("LANGUAGEBOT_STT_API_KEY", "")
STT_BASE_URL: str = os.environ.get("LANGUAGEBOT_STT_BASE_URL", "https://api.openai.com")
STT_MODEL: str = os.environ.get("LANGUAGEBOT_STT_MODEL", "whisper-1")
STT_TIMEOUT: float = float(os.environ.get("LANGUAGEBOT_STT_TIMEOUT", "15.0"))
STT_HEALTH_CHECK_INTERVAL: float = float(
    os.environ.get("LANGUAGEBOT_STT_HEALTH_CHECK_INTERVAL", "60.0")
)

# Energy VAD used to cut the microphone stream into segments.
STT_SILENCE_THRESHOLD: float = float(
    os.environ.get("LANGUAGEBOT_STT_SILENCE_THRESHOLD", "0.01")
)
STT_SILENCE_DURATION: float = float(
    os.environ.get("LANGUAGEBOT_STT_SILENCE_DURATION", "1.2")
)
STT_MAX_SEGMENT_DURATION: float = float(
    os.environ.get("LANGUAGEBOT_STT_MAX_SEGMENT_DURATION", "30.0")
)


# --- ElevenLabs TTS configuration ---

ELEVENLABS_API_KEY: str = os.environ.get("LANGUAGEBOT_ELEVENLABS_API_KEY", "")
ELEVENLABS_BASE_URL: str = os.environ.get(
    "LANGUAGEBOT_ELEVENLABS_BASE_URL", "https://api.elevenlabs.io"
)
TTS_VOICE_ID: str = os.environ.get("LANGUAGEBOT_TTS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")
TTS_MODEL: str = os.environ.get("LANGUAGEBOT_TTS_MODEL", "eleven_turbo_v2_5")
TTS_TIMEOUT: float = float(os.environ.get("LANGUAGEBOT_TTS_TIMEOUT", "10.0"))
TTS_SPEED: float = float(os.environ.get("LANGUAGEBOT_TTS_SPEED", "0.85"))
TTS_HEALTH_CHECK_INTERVAL: float = float(
    os.environ.get("LANGUAGEBOT_TTS_HEALTH_CHECK_INTERVAL", "60.0")
)


# --- Audio pipeline configuration ---

AUDIO_SAMPLE_RATE: int = int(os.environ.get("LANGUAGEBOT_AUDIO_SAMPLE_RATE", "16000"))


# --- Turn controller timing ---

CAPTURE_RESTART_DELAY: float = float(
    os.environ.get("LANGUAGEBOT_CAPTURE_RESTART_DELAY", "0.5")
)  # Pause before re-opening capture after an empty turn.

RETRY_MAX_ATTEMPTS: int = int(
    os.environ.get("LANGUAGEBOT_RETRY_MAX_ATTEMPTS", "1")
)  # Automatic restarts per failure streak. 0 = never retry.

RETRY_BASE_DELAY: float = float(os.environ.get("LANGUAGEBOT_RETRY_BASE_DELAY", "1.0"))
RETRY_BACKOFF: float = float(os.environ.get("LANGUAGEBOT_RETRY_BACKOFF", "2.0"))
