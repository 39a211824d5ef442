"""Bounded retry policy for automatic capture/output restarts."""

from dataclasses import dataclass

from languagebot.config import RETRY_BACKOFF, RETRY_BASE_DELAY, RETRY_MAX_ATTEMPTS


@dataclass(frozen=True)
class RetryPolicy:
    """How many automatic restarts a failure streak may trigger, and when.

    Attempts are numbered from 1. ``delay_for(n)`` grows geometrically:
    ``base_delay * backoff ** (n - 1)``.
    """

    max_attempts: int = RETRY_MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY
    backoff: float = RETRY_BACKOFF

    def allows(self, attempt: int) -> bool:
        return 1 <= attempt <= self.max_attempts

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (self.backoff ** max(attempt - 1, 0))
