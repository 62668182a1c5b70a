# ============================================================================
# CORE MODULE
# ============================================================================
# STATUS: Core module initialization
# PURPOSE: Export contracts, models, errors, clock and retry schedulers
# ============================================================================

from core.contracts import JobState
from core.clock import Clock, FrozenClock, SystemClock
from core.exceptions import (
    InvalidStateTransitionError,
    JobNotFoundError,
    JobQueueError,
    JobQueueLogicError,
    RelatedEntityError,
)
from core.models import Job, JobResult
from core.retry import ExponentialRetryScheduler, RetryScheduler

__all__ = [
    # Enums
    "JobState",
    # Models
    "Job",
    "JobResult",
    # Errors
    "JobQueueError",
    "InvalidStateTransitionError",
    "JobQueueLogicError",
    "JobNotFoundError",
    "RelatedEntityError",
    # Time / retry
    "Clock",
    "SystemClock",
    "FrozenClock",
    "RetryScheduler",
    "ExponentialRetryScheduler",
]
