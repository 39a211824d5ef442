"""Dialogue agent: the request/response port and its Gemini backend."""

from languagebot.agent.gemini_client import GeminiAgent
from languagebot.agent.provider import AgentUnavailableError, DialogueAgentPort

__all__ = ["AgentUnavailableError", "DialogueAgentPort", "GeminiAgent"]
