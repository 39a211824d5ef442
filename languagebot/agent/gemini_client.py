"""Gemini ``generateContent`` dialogue agent over httpx.

Request body::

    {"contents": [{"role": "user" | "model", "parts": [{"text": ...}]}, ...],
     "systemInstruction": {"parts": [{"text": ...}]}}

The reply text is read from ``candidates[0].content.parts[0].text``. Any
transport error, non-2xx status, timeout or unexpected payload shape is
reported as AgentUnavailableError. When the API key is empty the request
is sent without one, for deployments behind a credential-injecting proxy.
"""

import logging
from typing import Any, Sequence

import httpx

from languagebot.agent.prompts import (
    KICKOFF_TEXT,
    conversation_instruction,
    feedback_instruction,
    feedback_prompt,
)
from languagebot.agent.provider import AgentUnavailableError, DialogueAgentPort
from languagebot.config import AGENT_API_KEY, AGENT_BASE_URL, AGENT_MODEL, AGENT_TIMEOUT
from languagebot.session.types import SessionConfig, Speaker, Utterance

logger = logging.getLogger(__name__)

_ROLES = {Speaker.HUMAN: "user", Speaker.AGENT: "model"}


def build_contents(transcript: Sequence[Utterance]) -> list[dict[str, Any]]:
    """Map the transcript to wire turns, opening with the kickoff turn."""
    contents = [{"role": "user", "parts": [{"text": KICKOFF_TEXT}]}]
    for utterance in transcript:
        contents.append(
            {"role": _ROLES[utterance.speaker], "parts": [{"text": utterance.text}]}
        )
    return contents


def extract_text(payload: Any) -> str:
    """Pull the reply text out of a generateContent response payload."""
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise AgentUnavailableError("unexpected response shape") from exc
    if not isinstance(text, str) or not text.strip():
        raise AgentUnavailableError("response contained no text")
    return text.strip()


class GeminiAgent(DialogueAgentPort):
    """Dialogue agent backed by the Gemini generateContent endpoint."""

    def __init__(self, model: str = AGENT_MODEL) -> None:
        self._model = model
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        """Initialize the HTTP client."""
        headers = {"x-goog-api-key": AGENT_API_KEY} if AGENT_API_KEY else {}
        self._client = httpx.AsyncClient(
            base_url=AGENT_BASE_URL, timeout=AGENT_TIMEOUT, headers=headers
        )
        logger.info("Gemini agent configured at %s (model: %s)", AGENT_BASE_URL, self._model)

    async def stop(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def next_utterance(
        self, transcript: Sequence[Utterance], config: SessionConfig
    ) -> str:
        return await self._generate(
            build_contents(transcript), conversation_instruction(config)
        )

    async def feedback(self, transcript_text: str, config: SessionConfig) -> str:
        contents = [
            {"role": "user", "parts": [{"text": feedback_prompt(transcript_text, config)}]}
        ]
        return await self._generate(contents, feedback_instruction(config))

    async def _generate(self, contents: list[dict[str, Any]], instruction: str) -> str:
        """POST one generateContent request and return the reply text."""
        if self._client is None:
            raise AgentUnavailableError("agent client is not started")

        body = {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": instruction}]},
        }
        try:
            response = await self._client.post(
                f"/v1beta/models/{self._model}:generateContent", json=body
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Gemini request failed: %s", exc)
            raise AgentUnavailableError(str(exc)) from exc

        text = extract_text(payload)
        logger.debug("Gemini reply (%d chars)", len(text))
        return text
