# ============================================================================
# JOB MODEL
# ============================================================================
# STATUS: Core model - Job record and lifecycle state machine
# PURPOSE: One schedulable unit of work: command, args, state, relations
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: Job
# DEPENDENCIES: pydantic
# ============================================================================
"""
Job Model

A Job is one schedulable unit of work identified by (command, args).

Relations are loaded eagerly by the store, one level deep:
- dependencies: jobs that must be FINISHED before this one is startable
- original_job: the job this one retries (retry jobs only)
- retry_jobs: retry attempts spawned from this job (original jobs only)

Priority is stored negated (``sort_priority``) so that an ascending sort on
the stored column yields the highest public priority first.
"""

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from core.clock import utc_now
from core.contracts import (
    DEFAULT_QUEUE,
    MAX_QUEUE_LENGTH,
    MAX_WORKER_NAME_LENGTH,
    PRIORITY_DEFAULT,
    TRANSITIONS,
    JobState,
)
from core.exceptions import InvalidStateTransitionError, JobQueueLogicError

if TYPE_CHECKING:
    from core.models.job_result import JobResult


class Job(BaseModel):
    """
    A job record.

    Maps to: jobqueue.jobs table

    Lifecycle:
        1. Created in NEW (unconfirmed) or PENDING
        2. PENDING + startable + unlocked -> locked by one worker
        3. Locked job transitions to RUNNING
        4. RUNNING transitions to FINISHED / FAILED / TERMINATED / INCOMPLETE
        5. NEW / PENDING may be CANCELED instead
    """

    # =========================================================================
    # SQL DDL METADATA
    # =========================================================================
    __sql_table__: ClassVar[str] = "jobs"
    __sql_schema__: ClassVar[str] = "jobqueue"
    __sql_primary_key__: ClassVar[List[str]] = ["id"]
    __sql_serial_columns__: ClassVar[List[str]] = ["id"]
    __sql_foreign_keys__: ClassVar[Dict[str, str]] = {"original_job_id": "jobqueue.jobs(id)"}
    __sql_indexes__: ClassVar[List[tuple]] = [
        ("cmd_search_index", ["command"]),
        ("sorting_index", ["state", "sort_priority", "id"]),
    ]

    id: Optional[int] = Field(default=None, description="Assigned by the store on creation")

    state: JobState = Field(default=JobState.PENDING)
    queue: str = Field(default=DEFAULT_QUEUE, max_length=MAX_QUEUE_LENGTH)
    sort_priority: int = Field(
        default=0,
        description="Negated public priority (lower runs first)"
    )

    command: str = Field(..., min_length=1)
    args: List[Any] = Field(default_factory=list)

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now)
    execute_after: Optional[datetime] = Field(
        default=None,
        description="Job is not eligible before this time"
    )
    started_at: Optional[datetime] = None
    checked_at: Optional[datetime] = Field(
        default=None,
        description="Last heartbeat from the executing worker"
    )
    closed_at: Optional[datetime] = None

    # Lock
    worker_name: Optional[str] = Field(
        default=None,
        max_length=MAX_WORKER_NAME_LENGTH,
        description="Worker holding the execution lock"
    )

    # Execution outcome (written by the runner)
    output: Optional[str] = None
    error_output: Optional[str] = None
    exit_code: Optional[int] = None
    runtime: Optional[int] = Field(default=None, ge=0)
    memory_usage: Optional[int] = Field(default=None, ge=0)
    memory_usage_real: Optional[int] = Field(default=None, ge=0)
    stack_trace: Optional[str] = None
    max_runtime: int = Field(default=0, ge=0, description="Advisory, enforced by the runner")

    # Retry bookkeeping
    max_retries: int = Field(default=0, ge=0)
    original_job_id: Optional[int] = None

    # Relations (not columns)
    dependencies: List["Job"] = Field(default_factory=list, exclude=True, repr=False)
    original_job: Optional["Job"] = Field(default=None, exclude=True, repr=False)
    retry_jobs: List["Job"] = Field(default_factory=list, exclude=True, repr=False)

    @field_validator("queue")
    @classmethod
    def queue_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("queue must not be empty")
        return value

    @model_validator(mode="after")
    def default_execute_after(self) -> "Job":
        # A fresh job is eligible immediately (the scheduler compares with <)
        if self.execute_after is None:
            self.execute_after = self.created_at - timedelta(seconds=1)
        return self

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def create(
        cls,
        command: str,
        args: Optional[List[Any]] = None,
        confirmed: bool = True,
        queue: str = DEFAULT_QUEUE,
        priority: int = PRIORITY_DEFAULT,
        now: Optional[datetime] = None,
        **fields: Any,
    ) -> "Job":
        """
        Create a job the way callers think about it.

        Args:
            command: Command to execute
            args: Command arguments (part of the idempotency key)
            confirmed: False creates the job in NEW; it must be confirmed
                before it becomes eligible
            queue: Queue name (non-empty, at most 50 characters)
            priority: Public priority; higher runs first
            now: Creation time (defaults to the current UTC time)
            **fields: Any other Job field (max_retries, max_runtime, ...)
        """
        now = now or utc_now()
        return cls(
            command=command,
            args=list(args or []),
            state=JobState.PENDING if confirmed else JobState.NEW,
            queue=queue,
            sort_priority=-priority,
            created_at=now,
            execute_after=now - timedelta(seconds=1),
            **fields,
        )

    def clone_for_retry(self, now: Optional[datetime] = None) -> "Job":
        """Build a fresh PENDING job that re-attempts this one."""
        retry_job = Job.create(
            self.command,
            list(self.args),
            confirmed=True,
            queue=self.queue,
            priority=self.priority,
            now=now,
        )
        retry_job.max_runtime = self.max_runtime
        return retry_job

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    @property
    def priority(self) -> int:
        """Public priority (higher runs first)."""
        return -self.sort_priority

    def can_transition_to(self, new_state: Union[JobState, str]) -> bool:
        """Check a transition without performing it. Same state is a no-op."""
        new_state = JobState(new_state)
        if new_state == self.state:
            return True
        return new_state in TRANSITIONS[self.state]

    def set_state(self, new_state: Union[JobState, str], now: Optional[datetime] = None) -> None:
        """
        Move to a new state.

        Valid transitions:
            NEW -> PENDING, CANCELED
            PENDING -> RUNNING, CANCELED
            RUNNING -> FINISHED, FAILED, TERMINATED, INCOMPLETE
            CANCELED, FINISHED, FAILED, TERMINATED, INCOMPLETE -> (none)

        Raises:
            InvalidStateTransitionError: for any other transition
        """
        new_state = JobState(new_state)
        if new_state == self.state:
            return

        allowed = TRANSITIONS[self.state]
        if new_state not in allowed:
            raise InvalidStateTransitionError(self, new_state, allowed)

        now = now or utc_now()
        if new_state == JobState.RUNNING:
            self.started_at = now
            self.checked_at = now
        elif new_state == JobState.CANCELED or self.state == JobState.RUNNING:
            self.closed_at = now

        self.state = new_state

    def is_new(self) -> bool:
        return self.state == JobState.NEW

    def is_pending(self) -> bool:
        return self.state == JobState.PENDING

    def is_canceled(self) -> bool:
        return self.state == JobState.CANCELED

    def is_running(self) -> bool:
        return self.state == JobState.RUNNING

    def is_finished(self) -> bool:
        return self.state == JobState.FINISHED

    def is_failed(self) -> bool:
        return self.state == JobState.FAILED

    def is_terminated(self) -> bool:
        return self.state == JobState.TERMINATED

    def is_incomplete(self) -> bool:
        return self.state == JobState.INCOMPLETE

    def is_in_final_state(self) -> bool:
        return self.state.is_final()

    def is_closed_non_successful(self) -> bool:
        return self.state.is_non_successful_final()

    def is_startable(self) -> bool:
        """True iff every dependency is FINISHED."""
        return all(dep.state == JobState.FINISHED for dep in self.dependencies)

    # =========================================================================
    # DEPENDENCIES
    # =========================================================================

    def has_dependency(self, job: "Job") -> bool:
        return job in self.dependencies

    def add_dependency(self, job: "Job") -> None:
        """Add a dependency. Only allowed while the job cannot have started."""
        if self.has_dependency(job):
            return

        if self.might_have_started():
            raise JobQueueLogicError(
                "You cannot add dependencies to a job which might have been started already."
            )

        self.dependencies.append(job)

    def might_have_started(self) -> bool:
        if self.id is None:
            return False
        if self.state == JobState.NEW:
            return False
        if self.state == JobState.PENDING and not self.is_startable():
            return False
        return True

    # =========================================================================
    # RETRIES
    # =========================================================================

    def is_retry_job(self) -> bool:
        return self.original_job_id is not None or self.original_job is not None

    def is_retry_allowed(self) -> bool:
        """True iff max_retries > 0 and fewer retry jobs than that exist."""
        if self.max_retries == 0:
            return False
        return len(self.retry_jobs) < self.max_retries

    def is_retried(self) -> bool:
        """True while some retry attempt has not reached a final state."""
        return any(not job.is_in_final_state() for job in self.retry_jobs)

    def get_original_job(self) -> "Job":
        """The job this one retries, or the job itself."""
        return self.original_job if self.original_job is not None else self

    def set_original_job(self, job: "Job") -> None:
        if self.state != JobState.PENDING:
            raise JobQueueLogicError(f'{self} must be in state "pending".')

        if self.is_retry_job():
            raise JobQueueLogicError(f"{self} already has an original job set.")

        self.original_job = job
        self.original_job_id = job.id

    def add_retry_job(self, job: "Job") -> None:
        if self.state != JobState.RUNNING:
            raise JobQueueLogicError("Retry jobs can only be added to running jobs.")

        job.set_original_job(self)
        self.retry_jobs.append(job)

    # =========================================================================
    # EXECUTION OUTCOME
    # =========================================================================

    def checked(self, now: Optional[datetime] = None) -> None:
        """Record a heartbeat from the executing worker."""
        self.checked_at = now or utc_now()

    def add_output(self, output: str) -> None:
        self.output = (self.output or "") + output

    def add_error_output(self, output: str) -> None:
        self.error_output = (self.error_output or "") + output

    def record_result(self, result: "JobResult") -> None:
        """Copy a runner's outcome fields onto the job (state is left to the closer)."""
        self.output = result.output
        self.error_output = result.error_output
        self.exit_code = result.exit_code
        self.runtime = result.runtime
        self.memory_usage = result.memory_usage
        self.memory_usage_real = result.memory_usage_real
        self.stack_trace = result.stack_trace

    def to_row(self) -> Dict[str, Any]:
        """Column values for persistence (relations excluded)."""
        row = self.model_dump()
        row["state"] = self.state.value
        return row

    # =========================================================================
    # IDENTITY
    # =========================================================================

    def __eq__(self, other: object) -> bool:
        # Rows are equal by id; unsaved jobs only equal themselves.
        # Field-wise comparison would walk the original <-> retry cycle.
        if not isinstance(other, Job):
            return NotImplemented
        if self.id is None or other.id is None:
            return self is other
        return self.id == other.id

    def __str__(self) -> str:
        return f'Job(id = {self.id}, command = "{self.command}")'


Job.model_rebuild()


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["Job"]
