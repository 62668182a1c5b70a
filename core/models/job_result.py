# ============================================================================
# JOB RESULT MODEL
# ============================================================================
# STATUS: Core model - Outcome reported by a runner
# PURPOSE: Carry exit state and captured output back into the job queue
# EXPORTS: JobResult
# DEPENDENCIES: pydantic
# ============================================================================
"""
Job Result Model

The runner (external to the job queue) executes a locked, RUNNING job and
reports one of these. JobService.report_result() copies the output fields
onto the job and hands ``outcome`` to the closer.
"""

import traceback
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from core.contracts import RUN_OUTCOME_STATES, JobState


class JobResult(BaseModel):
    """Outcome of one execution of a job's command."""

    outcome: JobState
    output: Optional[str] = None
    error_output: Optional[str] = None
    exit_code: Optional[int] = None
    runtime: Optional[int] = Field(default=None, ge=0, description="Seconds")
    memory_usage: Optional[int] = Field(default=None, ge=0, description="Bytes")
    memory_usage_real: Optional[int] = Field(default=None, ge=0, description="Bytes")
    stack_trace: Optional[str] = None

    @field_validator("outcome")
    @classmethod
    def outcome_closes_running_job(cls, value: JobState) -> JobState:
        if value not in RUN_OUTCOME_STATES:
            allowed = ", ".join(sorted(s.value for s in RUN_OUTCOME_STATES))
            raise ValueError(f"outcome must be one of {allowed}, got {value.value}")
        return value

    @property
    def succeeded(self) -> bool:
        return self.outcome == JobState.FINISHED

    @classmethod
    def from_exception(cls, exc: BaseException, runtime: Optional[int] = None) -> "JobResult":
        """A FAILED result describing an exception raised by the runner itself."""
        return cls(
            outcome=JobState.FAILED,
            error_output=f"{type(exc).__name__}: {exc}",
            runtime=runtime,
            stack_trace="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )


__all__ = ["JobResult"]
