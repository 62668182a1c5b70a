# ============================================================================
# JOB SCHEDULER
# ============================================================================
# STATUS: Core - Job selection and locking
# PURPOSE: Hand the best startable pending job to exactly one worker
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Scheduler

Selection loop:

    1. Ask the store for the best eligible PENDING job
       (unlocked, execute_after < now, ordered by priority then id)
    2. None -> nothing to do
    3. Dependencies not all FINISHED -> exclude it and look again
    4. Conditional lock write; exactly one affected row wins.
       A lost race excludes the job and looks again.

Workers coordinate only through the lock write, so at most one worker ever
observes a successful lock on a job.
"""

import logging
from typing import List, Optional, Sequence

from core.clock import Clock
from core.contracts import MAX_WORKER_NAME_LENGTH
from core.logging import log_checkpoint, log_context
from core.models import Job
from repositories.base import JobStore
from repositories.job_cache import JobCache

logger = logging.getLogger(__name__)


class JobScheduler:
    """Selects and locks the next startable pending job for a worker."""

    def __init__(self, store: JobStore, clock: Clock, cache: Optional[JobCache] = None):
        self.store = store
        self.clock = clock
        self.cache = cache if cache is not None else JobCache()

    async def acquire_next(
        self,
        worker_name: str,
        excluded_ids: Optional[List[int]] = None,
        excluded_queues: Sequence[str] = (),
        restricted_queues: Sequence[str] = (),
    ) -> Optional[Job]:
        """
        Find and lock the next startable job.

        Args:
            worker_name: Lock owner (non-empty, at most 50 characters)
            excluded_ids: Job ids to skip. Appended to in place with every
                candidate skipped during this call.
            excluded_queues: Never pick from these queues
            restricted_queues: If non-empty, only pick from these queues

        Returns:
            The locked job (worker_name set), or None if nothing is eligible
        """
        if not worker_name or len(worker_name) > MAX_WORKER_NAME_LENGTH:
            raise ValueError(
                f"worker_name must be 1-{MAX_WORKER_NAME_LENGTH} characters, got {worker_name!r}"
            )

        if excluded_ids is None:
            excluded_ids = []

        while True:
            job = await self.store.find_pending_job(
                self.clock.now(),
                excluded_ids,
                excluded_queues,
                restricted_queues,
            )
            if job is None:
                return None

            if job.is_startable() and await self._acquire_lock(worker_name, job):
                self.cache.put(job)
                with log_context(job_id=job.id, worker_name=worker_name, queue=job.queue):
                    log_checkpoint("job_locked", {"command": job.command}, logger=logger)
                return job

            excluded_ids.append(job.id)

            # Another process may change a skipped job; re-read it next time
            self.cache.invalidate(job)

    async def _acquire_lock(self, worker_name: str, job: Job) -> bool:
        affected_rows = await self.store.acquire_lock(job.id, worker_name)
        if affected_rows > 0:
            job.worker_name = worker_name
            return True

        logger.debug(f"Lost lock race for job {job.id} (worker {worker_name})")
        return False


__all__ = ["JobScheduler"]
