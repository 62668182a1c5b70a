# ============================================================================
# SERVICES MODULE
# ============================================================================
# STATUS: Core - Business logic layer
# PURPOSE: Scheduling, closing and job lifecycle services
# ============================================================================
"""
Services Module

Business logic for the job queue.
Services coordinate between the store, the cache and the retry policy.

Usage:
    from services import JobService

    service = JobService.build(JobRepository(pool))
    job = await service.create_job("mail:send", ["--to", "ops"])
"""

from .closer import JobCloser, StateChangeHook
from .job_service import JobService
from .scheduler import JobScheduler

__all__ = [
    "JobService",
    "JobScheduler",
    "JobCloser",
    "StateChangeHook",
]
