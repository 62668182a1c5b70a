# ============================================================================
# JOB CACHE
# ============================================================================
# STATUS: Core - Read-through cache for hydrated jobs
# PURPOSE: Keep live jobs in memory for a worker, evict closed ones
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Cache

A bounded, in-process map of job id -> Job used by the scheduler, closer
and service. Entries are dropped whenever another process might change the
row (unstartable or lost-race candidates) and whenever a job is closed for
good, so a long-running worker does not accumulate finished jobs.
"""

import logging
from collections import OrderedDict
from typing import Iterator, Optional

from core.models import Job

logger = logging.getLogger(__name__)


class JobCache:
    """LRU map of job id -> Job."""

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self._jobs: "OrderedDict[int, Job]" = OrderedDict()

    def get(self, job_id: int) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is not None:
            self._jobs.move_to_end(job_id)
        return job

    def put(self, job: Job) -> None:
        if job.id is None:
            return
        self._jobs[job.id] = job
        self._jobs.move_to_end(job.id)
        while len(self._jobs) > self.max_size:
            evicted_id, _ = self._jobs.popitem(last=False)
            logger.debug(f"Evicted job {evicted_id} from cache")

    def invalidate(self, job: Job) -> None:
        if job.id is not None:
            self._jobs.pop(job.id, None)

    def clear(self) -> None:
        self._jobs.clear()

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> Iterator[int]:
        return iter(self._jobs)


__all__ = ["JobCache"]
