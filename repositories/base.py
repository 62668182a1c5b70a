# ============================================================================
# JOB STORE INTERFACE
# ============================================================================
# STATUS: Core - Persistence contract for scheduler, closer and service
# PURPOSE: Abstract job storage so services run against PostgreSQL or memory
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Store Interface

Concrete stores implement row-level reads and writes. Relation loading
(dependencies, original job, retry jobs) is shared here so every store
hydrates jobs identically:

- dependencies and retry_jobs are loaded one level deep
- original_job is loaded with its own retry_jobs, in which the job being
  hydrated stands in for its stored copy
"""

from abc import ABC, abstractmethod
from datetime import datetime
from itertools import chain
from typing import Any, AsyncContextManager, Dict, Iterable, List, Optional, Sequence

from core.contracts import AVAILABLE_STATES, JobState
from core.models import Job


class JobStore(ABC):
    """Persistence operations for jobs."""

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        """
        Async context manager binding all store calls in the block to one
        transaction. Commits on normal exit, rolls back on exception.
        """

    # =========================================================================
    # WRITES
    # =========================================================================

    @abstractmethod
    async def create(self, job: Job) -> Job:
        """Insert a job and its dependency edges; assigns job.id."""

    @abstractmethod
    async def update(self, job: Job) -> None:
        """Write every column of a persisted job and any new dependency edges."""

    @abstractmethod
    async def delete(self, job: Job) -> None:
        """Remove a job row."""

    @abstractmethod
    async def acquire_lock(self, job_id: int, worker_name: str) -> int:
        """
        Atomically set worker_name where it is NULL.

        Returns:
            Number of rows affected (1 = lock won, 0 = lost)
        """

    async def save(self, job: Job) -> Job:
        """Create or update depending on whether the job has an id."""
        if job.id is None:
            return await self.create(job)
        await self.update(job)
        return job

    # =========================================================================
    # ROW-LEVEL READS (no relations)
    # =========================================================================

    @abstractmethod
    async def _fetch_jobs(self, ids: Iterable[int]) -> Dict[int, Job]:
        """Shallow jobs by id."""

    @abstractmethod
    async def _fetch_dependency_ids(self, ids: Sequence[int]) -> Dict[int, List[int]]:
        """source id -> dest ids (ascending) for the given sources."""

    @abstractmethod
    async def _fetch_retry_job_ids(self, ids: Sequence[int]) -> Dict[int, List[int]]:
        """original id -> retry job ids (ascending) for the given originals."""

    @abstractmethod
    async def get_incoming_dependency_ids(self, job_id: int) -> List[int]:
        """Ids of jobs that list job_id as a dependency."""

    @abstractmethod
    async def _find_pending_row(
        self,
        now: datetime,
        excluded_ids: Sequence[int],
        excluded_queues: Sequence[str],
        restricted_queues: Sequence[str],
    ) -> Optional[Job]:
        """Best unlocked, eligible PENDING row by (sort_priority, id)."""

    @abstractmethod
    async def _find_row_by_command(self, command: str, args: List[Any]) -> Optional[Job]:
        """Earliest (lowest id) row with this command and args."""

    @abstractmethod
    async def _find_rows_with_error(self, limit: int) -> List[Job]:
        """FAILED/TERMINATED non-retry rows, newest closed_at first."""

    @abstractmethod
    async def get_available_queues(self) -> List[str]:
        """Distinct queues with RUNNING, NEW or PENDING jobs."""

    @abstractmethod
    async def count_available_jobs(self, queue: str) -> int:
        """Number of RUNNING, NEW or PENDING jobs in a queue."""

    # =========================================================================
    # RELATED ENTITIES
    # =========================================================================

    @abstractmethod
    async def add_related_entity(self, job: Job, entity: Any) -> None:
        """Associate a persisted job with a domain object."""

    @abstractmethod
    async def _find_rows_for_related_entity(
        self,
        entity: Any,
        command: Optional[str] = None,
        states: Sequence[JobState] = (),
    ) -> List[Job]:
        """Rows joined to the entity, optionally filtered by command and states."""

    # =========================================================================
    # HYDRATED READS
    # =========================================================================

    async def get(self, job_id: int) -> Optional[Job]:
        jobs = await self.find_by_ids([job_id])
        return jobs[0] if jobs else None

    async def find_by_ids(self, ids: Iterable[int]) -> List[Job]:
        ids = list(dict.fromkeys(ids))
        if not ids:
            return []
        rows = await self._fetch_jobs(ids)
        return await self._load_relations([rows[i] for i in ids if i in rows])

    async def find_pending_job(
        self,
        now: datetime,
        excluded_ids: Sequence[int] = (),
        excluded_queues: Sequence[str] = (),
        restricted_queues: Sequence[str] = (),
    ) -> Optional[Job]:
        job = await self._find_pending_row(now, excluded_ids, excluded_queues, restricted_queues)
        if job is None:
            return None
        return (await self._load_relations([job]))[0]

    async def find_by_command(self, command: str, args: Optional[List[Any]] = None) -> Optional[Job]:
        job = await self._find_row_by_command(command, list(args or []))
        if job is None:
            return None
        return (await self._load_relations([job]))[0]

    async def find_incoming_dependencies(self, job: Job) -> List[Job]:
        """Jobs naming this job as a dependency, with relations loaded."""
        ids = await self.get_incoming_dependency_ids(job.id)
        return await self.find_by_ids(ids)

    async def find_last_jobs_with_error(self, limit: int = 10) -> List[Job]:
        return await self._load_relations(await self._find_rows_with_error(limit))

    async def find_all_for_related_entity(self, entity: Any) -> List[Job]:
        return await self._load_relations(await self._find_rows_for_related_entity(entity))

    async def find_job_for_related_entity(
        self,
        command: str,
        entity: Any,
        states: Sequence[JobState] = (),
    ) -> Optional[Job]:
        rows = await self._find_rows_for_related_entity(entity, command=command, states=states)
        if not rows:
            return None
        return (await self._load_relations(rows[:1]))[0]

    async def find_open_job_for_related_entity(self, command: str, entity: Any) -> Optional[Job]:
        return await self.find_job_for_related_entity(command, entity, tuple(AVAILABLE_STATES))

    async def _load_relations(self, jobs: List[Job]) -> List[Job]:
        if not jobs:
            return jobs

        ids = [job.id for job in jobs]
        dependency_ids = await self._fetch_dependency_ids(ids)
        original_ids = [job.original_job_id for job in jobs if job.original_job_id is not None]
        retry_ids = await self._fetch_retry_job_ids(list(dict.fromkeys(ids + original_ids)))

        wanted = set(chain(original_ids, *dependency_ids.values(), *retry_ids.values()))
        related = await self._fetch_jobs(wanted) if wanted else {}

        for job in jobs:
            job.dependencies = [related[i] for i in dependency_ids.get(job.id, []) if i in related]
            job.retry_jobs = [related[i] for i in retry_ids.get(job.id, []) if i in related]

            original = related.get(job.original_job_id) if job.original_job_id is not None else None
            if original is not None:
                original.retry_jobs = [
                    job if i == job.id else related[i]
                    for i in retry_ids.get(original.id, [])
                    if i == job.id or i in related
                ]
            job.original_job = original

        return jobs
