# ============================================================================
# JOB QUEUE EXCEPTIONS
# ============================================================================
# STATUS: Foundation - Error hierarchy
# PURPOSE: Typed errors raised by the state machine, services and repositories
# ============================================================================
"""
Job queue exceptions.

Everything raised on purpose by the job queue derives from JobQueueError.
Lock contention and an empty candidate pool are NOT errors; the scheduler
reports those by returning None.
"""

from typing import TYPE_CHECKING, Any, Iterable, List, Optional

if TYPE_CHECKING:
    from core.models.job import Job


class JobQueueError(Exception):
    """Base exception for job queue operations."""


class InvalidStateTransitionError(JobQueueError, ValueError):
    """
    Raised when a job is asked to move to a state its current state
    does not allow.

    Carries the job, the rejected target state and the allowed targets.
    """

    def __init__(self, job: "Job", new_state: Any, allowed_states: Optional[Iterable[Any]] = None):
        self.job = job
        self.new_state = new_state
        self.allowed_states: List[Any] = sorted(allowed_states or [], key=_state_value)

        allowed = (
            ", ".join(f'"{_state_value(s)}"' for s in self.allowed_states)
            if self.allowed_states else "#none#"
        )
        super().__init__(
            f'The Job(id = {job.id}) cannot change from "{_state_value(job.state)}" '
            f'to "{_state_value(new_state)}". Allowed transitions: {allowed}'
        )


class JobQueueLogicError(JobQueueError, RuntimeError):
    """Raised when the job queue API is used in a way that can never succeed."""


class JobNotFoundError(JobQueueError, LookupError):
    """Raised when a job lookup that must succeed finds nothing."""

    def __init__(self, message: str, command: Optional[str] = None, args: Optional[list] = None):
        self.command = command
        self.command_args = args
        super().__init__(message)


class RelatedEntityError(JobQueueError, ValueError):
    """Raised when no stable identity can be derived for a related entity."""


def _state_value(state: Any) -> str:
    return getattr(state, "value", str(state))


__all__ = [
    "JobQueueError",
    "InvalidStateTransitionError",
    "JobQueueLogicError",
    "JobNotFoundError",
    "RelatedEntityError",
]
