"""Pydantic models for post-session scoring."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class FeedbackStatus(str, Enum):
    """Whether generated feedback is available in a report."""

    PENDING = "pending"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class CoverageReport(BaseModel):
    """Which required items the human used at least once."""

    model_config = ConfigDict(frozen=True)

    used_items: list[str] = Field(default_factory=list)
    total_count: int

    @property
    def used_count(self) -> int:
        return len(self.used_items)

    @property
    def summary(self) -> str:
        return (
            f"You used {self.used_count} out of {self.total_count} "
            "required words/grammar structures."
        )


class ScoreReport(BaseModel):
    """Everything shown on the score page, built once from the final transcript."""

    model_config = ConfigDict(frozen=True)

    coverage: CoverageReport
    transcript_html: str
    transcript_text: str
    feedback: str | None = None
    feedback_status: FeedbackStatus = FeedbackStatus.PENDING

    @property
    def used_words(self) -> set[str]:
        return set(self.coverage.used_items)

    @property
    def total_required(self) -> int:
        return self.coverage.total_count
