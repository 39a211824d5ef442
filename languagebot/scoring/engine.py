"""Post-session scoring: coverage of required items, highlighted transcript, feedback.

Everything except feedback is a pure function of the final transcript and
the session config. Feedback is one request to the dialogue agent; any
failure degrades to ``FeedbackStatus.UNAVAILABLE`` and is never raised.
"""

import html
import logging
import re
from typing import Iterable, Sequence

from languagebot.agent.provider import DialogueAgentPort
from languagebot.scoring.matcher import highlight, used_items
from languagebot.scoring.types import CoverageReport, FeedbackStatus, ScoreReport
from languagebot.session.types import SessionConfig, Speaker, Utterance

logger = logging.getLogger(__name__)

_LABELS = {Speaker.HUMAN: "User", Speaker.AGENT: "LLM"}
_CSS_CLASSES = {Speaker.HUMAN: "user-message", Speaker.AGENT: "llm-message"}

# Markdown the model sometimes returns despite being asked for plaintext.
_MARKDOWN_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"^\s{0,3}#{1,6}\s*", re.MULTILINE), ""),
    (re.compile(r"(\*\*|__)(.+?)\1", re.DOTALL), r"\2"),
    (re.compile(r"(?<![\w*])([*_])(?![\s*_])(.+?)(?<![\s*_])\1(?![\w*])"), r"\2"),
    (re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+", re.MULTILINE), ""),
    (re.compile(r"`([^`]*)`"), r"\1"),
]


def human_text(transcript: Iterable[Utterance]) -> str:
    """Human utterances, one per line, in transcript order."""
    return "\n".join(u.text for u in transcript if u.speaker == Speaker.HUMAN)


def coverage(transcript: Iterable[Utterance], required_items: Sequence[str]) -> CoverageReport:
    """Which required items appear anywhere in the human's utterances."""
    text = human_text(transcript)
    return CoverageReport(
        used_items=used_items(text, required_items),
        total_count=len(required_items),
    )


def transcript_html(transcript: Iterable[Utterance], required_items: Sequence[str]) -> str:
    """One ``<p>`` per utterance; required items marked in human lines only."""
    lines = []
    for utterance in transcript:
        if utterance.speaker == Speaker.HUMAN:
            body = highlight(utterance.text, required_items, escape=True)
        else:
            body = html.escape(utterance.text)
        lines.append(
            f'<p class="{_CSS_CLASSES[utterance.speaker]}">'
            f"<strong>{_LABELS[utterance.speaker]}:</strong> {body}</p>"
        )
    return "\n".join(lines)


def transcript_text(transcript: Iterable[Utterance]) -> str:
    return "\n".join(f"{_LABELS[u.speaker]}: {u.text}" for u in transcript)


def to_plain_text(text: str) -> str:
    """Strip leftover markdown structure from generated feedback."""
    for pattern, replacement in _MARKDOWN_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


class ScoringEngine:
    """Builds the ScoreReport for a finished session."""

    def __init__(self, agent: DialogueAgentPort | None = None) -> None:
        self._agent = agent

    def build_report(
        self, transcript: Sequence[Utterance], config: SessionConfig
    ) -> ScoreReport:
        """Coverage and transcript views, with feedback still pending."""
        return ScoreReport(
            coverage=coverage(transcript, config.required_items),
            transcript_html=transcript_html(transcript, config.required_items),
            transcript_text=transcript_text(transcript),
        )

    async def generate_feedback(
        self, transcript: Sequence[Utterance], config: SessionConfig
    ) -> str | None:
        """Ask the agent once for feedback; None when it cannot be produced."""
        if self._agent is None:
            logger.info("No dialogue agent configured — feedback unavailable")
            return None
        try:
            feedback = await self._agent.feedback(human_text(transcript), config)
        except Exception:
            logger.warning("Feedback generation failed", exc_info=True)
            return None
        return to_plain_text(feedback) or None

    async def score(
        self, transcript: Sequence[Utterance], config: SessionConfig
    ) -> ScoreReport:
        """Full report including feedback. Never raises on agent failure."""
        report = self.build_report(transcript, config)
        logger.info("Scored session: %s", report.coverage.summary)
        feedback = await self.generate_feedback(transcript, config)
        if feedback is None:
            return report.model_copy(update={"feedback_status": FeedbackStatus.UNAVAILABLE})
        return report.model_copy(
            update={"feedback": feedback, "feedback_status": FeedbackStatus.READY}
        )
