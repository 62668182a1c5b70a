# ============================================================================
# RETRY SCHEDULERS
# ============================================================================
# STATUS: Core - Backoff policy for retry jobs
# PURPOSE: Compute when the next retry of a failed job becomes eligible
# CREATED: 19 OCT 2026
# ============================================================================
"""
Retry Schedulers

A RetryScheduler answers one question: given an original job, at what time
does its next retry attempt become eligible?

The closer links the new retry job to its original BEFORE asking, so
``len(original_job.retry_jobs)`` is the ordinal of the attempt being
scheduled (1 for the first retry). With the default exponential base of 5
successive retries wait 5s, 25s, 125s, ...

Any monotonically non-decreasing backoff satisfies the contract.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional

from core.clock import Clock

if TYPE_CHECKING:
    from core.config.defaults import RetryDefaults
    from core.models.job import Job


class RetryScheduler(ABC):
    """Computes the execute_after time of the next retry job."""

    def __init__(self, clock: Clock, max_delay_seconds: Optional[float] = None):
        self.clock = clock
        self.max_delay_seconds = max_delay_seconds

    def schedule_next_retry(self, original_job: "Job") -> datetime:
        delay = self.delay_seconds(len(original_job.retry_jobs))
        if self.max_delay_seconds is not None:
            delay = min(delay, self.max_delay_seconds)
        return self.clock.now() + timedelta(seconds=delay)

    @abstractmethod
    def delay_seconds(self, attempt: int) -> float:
        """Delay for the given retry attempt (1-based)."""


class ExponentialRetryScheduler(RetryScheduler):
    """now + base ** attempt seconds."""

    def __init__(self, clock: Clock, base: float = 5, max_delay_seconds: Optional[float] = None):
        super().__init__(clock, max_delay_seconds)
        if base < 1:
            raise ValueError(f"base must be >= 1, got {base}")
        self.base = base

    def delay_seconds(self, attempt: int) -> float:
        return self.base ** attempt


class LinearRetryScheduler(RetryScheduler):
    """now + step * attempt seconds."""

    def __init__(self, clock: Clock, step: float = 5, max_delay_seconds: Optional[float] = None):
        super().__init__(clock, max_delay_seconds)
        self.step = step

    def delay_seconds(self, attempt: int) -> float:
        return self.step * attempt


class FixedRetryScheduler(RetryScheduler):
    """now + delay seconds, whatever the attempt."""

    def __init__(self, clock: Clock, delay: float = 5, max_delay_seconds: Optional[float] = None):
        super().__init__(clock, max_delay_seconds)
        self.delay = delay

    def delay_seconds(self, attempt: int) -> float:
        return self.delay


def create_retry_scheduler(defaults: "RetryDefaults", clock: Clock) -> RetryScheduler:
    """Build the scheduler named by RetryDefaults.backoff."""
    if defaults.backoff == "exponential":
        return ExponentialRetryScheduler(clock, defaults.base, defaults.max_delay_seconds)
    if defaults.backoff == "linear":
        return LinearRetryScheduler(clock, defaults.base, defaults.max_delay_seconds)
    if defaults.backoff == "fixed":
        return FixedRetryScheduler(clock, defaults.base, defaults.max_delay_seconds)
    raise ValueError(f"Unknown retry backoff: {defaults.backoff!r}")


__all__ = [
    "RetryScheduler",
    "ExponentialRetryScheduler",
    "LinearRetryScheduler",
    "FixedRetryScheduler",
    "create_retry_scheduler",
]
