"""Post-session scoring: coverage, highlighting, and generated feedback."""

from languagebot.scoring.engine import ScoringEngine, coverage, transcript_html
from languagebot.scoring.matcher import highlight
from languagebot.scoring.types import CoverageReport, FeedbackStatus, ScoreReport

__all__ = [
    "CoverageReport",
    "FeedbackStatus",
    "ScoreReport",
    "ScoringEngine",
    "coverage",
    "highlight",
    "transcript_html",
]
