# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# STATUS: Foundation - Job state enum and queue constants
# PURPOSE: Define the job lifecycle states and the transition table
# EXPORTS: JobState, TRANSITIONS, DEFAULT_QUEUE, MAX_QUEUE_LENGTH, PRIORITY_*
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the job queue.

These values cross every boundary:
- SQL (PostgreSQL ``state`` column stores the enum value)
- Python (state machine, scheduler, closer)
"""

from enum import Enum
from typing import Dict, FrozenSet


# ============================================================================
# STATE ENUM
# ============================================================================

class JobState(str, Enum):
    """
    Job lifecycle states.

    State transitions:
        NEW -> PENDING -> RUNNING -> FINISHED
                                  -> FAILED
                                  -> TERMINATED
                                  -> INCOMPLETE
        NEW, PENDING -> CANCELED
    """
    NEW = "new"                  # Created, awaiting confirmation
    PENDING = "pending"          # Eligible for locking once startable
    CANCELED = "canceled"        # Canceled before it ran
    RUNNING = "running"          # Locked and executing
    FINISHED = "finished"        # Exited successfully
    FAILED = "failed"            # Exited with an error
    TERMINATED = "terminated"    # Killed by the runner (e.g. max runtime)
    INCOMPLETE = "incomplete"    # Worker went away before reporting

    def is_final(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self not in (JobState.NEW, JobState.PENDING, JobState.RUNNING)

    def is_non_successful_final(self) -> bool:
        """Check if this is a terminal state other than FINISHED."""
        return self in NON_SUCCESSFUL_FINAL_STATES


NON_SUCCESSFUL_FINAL_STATES: FrozenSet[JobState] = frozenset({
    JobState.CANCELED,
    JobState.FAILED,
    JobState.INCOMPLETE,
    JobState.TERMINATED,
})

# States a RUNNING job may be closed with by its runner
RUN_OUTCOME_STATES: FrozenSet[JobState] = frozenset({
    JobState.FINISHED,
    JobState.FAILED,
    JobState.TERMINATED,
    JobState.INCOMPLETE,
})

# States counted as "available" work for queue statistics
AVAILABLE_STATES: FrozenSet[JobState] = frozenset({
    JobState.RUNNING,
    JobState.NEW,
    JobState.PENDING,
})

TRANSITIONS: Dict[JobState, FrozenSet[JobState]] = {
    JobState.NEW: frozenset({JobState.PENDING, JobState.CANCELED}),
    JobState.PENDING: frozenset({JobState.RUNNING, JobState.CANCELED}),
    JobState.RUNNING: RUN_OUTCOME_STATES,
    JobState.CANCELED: frozenset(),
    JobState.FINISHED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.TERMINATED: frozenset(),
    JobState.INCOMPLETE: frozenset(),
}


# ============================================================================
# QUEUE / PRIORITY CONSTANTS
# ============================================================================

DEFAULT_QUEUE = "default"
MAX_QUEUE_LENGTH = 50
MAX_WORKER_NAME_LENGTH = 50

PRIORITY_LOW = -5
PRIORITY_DEFAULT = 0
PRIORITY_HIGH = 5


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "JobState",
    "NON_SUCCESSFUL_FINAL_STATES",
    "RUN_OUTCOME_STATES",
    "AVAILABLE_STATES",
    "TRANSITIONS",
    "DEFAULT_QUEUE",
    "MAX_QUEUE_LENGTH",
    "MAX_WORKER_NAME_LENGTH",
    "PRIORITY_LOW",
    "PRIORITY_DEFAULT",
    "PRIORITY_HIGH",
]
