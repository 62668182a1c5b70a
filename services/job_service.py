# ============================================================================
# JOB SERVICE
# ============================================================================
# STATUS: Core - Job lifecycle management
# PURPOSE: Create jobs, confirm and start them, record results, close them
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Service

Facade over the store, scheduler and closer:
- Create jobs (optionally idempotent on command + args)
- Confirm NEW jobs, start locked jobs, record heartbeats
- Record a runner's result and close the job
- Read-through cache for job lookups
"""

import logging
from typing import Any, Iterable, List, Optional, Sequence

from core.clock import Clock, SystemClock
from core.config.defaults import RetryDefaults
from core.contracts import DEFAULT_QUEUE, PRIORITY_DEFAULT, JobState
from core.exceptions import JobNotFoundError, JobQueueLogicError
from core.models import Job, JobResult
from core.retry import create_retry_scheduler
from repositories.base import JobStore
from repositories.job_cache import JobCache
from .closer import JobCloser, StateChangeHook
from .scheduler import JobScheduler

logger = logging.getLogger(__name__)


class JobService:
    """Service for job lifecycle management."""

    def __init__(
        self,
        store: JobStore,
        scheduler: JobScheduler,
        closer: JobCloser,
        clock: Clock,
        cache: Optional[JobCache] = None,
    ):
        """
        Initialize job service.

        Args:
            store: Job persistence
            scheduler: Selection and locking
            closer: Finalization and cascades
            clock: Source of "now" for every timestamp
            cache: Shared job cache (the scheduler's and closer's by default)
        """
        self.store = store
        self.scheduler = scheduler
        self.closer = closer
        self.clock = clock
        self.cache = cache if cache is not None else scheduler.cache

    @classmethod
    def build(
        cls,
        store: JobStore,
        clock: Optional[Clock] = None,
        retry_defaults: Optional[RetryDefaults] = None,
        state_change_hook: Optional[StateChangeHook] = None,
        cache_size: int = 1000,
    ) -> "JobService":
        """Wire a scheduler, closer and cache around one store."""
        clock = clock or SystemClock()
        cache = JobCache(max_size=cache_size)
        retry_scheduler = create_retry_scheduler(retry_defaults or RetryDefaults(), clock)
        return cls(
            store=store,
            scheduler=JobScheduler(store, clock, cache),
            closer=JobCloser(store, retry_scheduler, clock, state_change_hook, cache),
            clock=clock,
            cache=cache,
        )

    # =========================================================================
    # CREATION
    # =========================================================================

    async def create_job(
        self,
        command: str,
        args: Optional[List[Any]] = None,
        confirmed: bool = True,
        queue: str = DEFAULT_QUEUE,
        priority: int = PRIORITY_DEFAULT,
        max_retries: int = 0,
        max_runtime: int = 0,
        dependencies: Sequence[Job] = (),
        related_entities: Sequence[Any] = (),
    ) -> Job:
        """
        Create and persist a job.

        Args:
            command: Command to execute
            args: Command arguments
            confirmed: False creates the job in NEW (see confirm())
            queue: Queue name
            priority: Higher runs first
            max_retries: Retry attempts allowed after a failure
            max_runtime: Advisory runtime limit (seconds) for the runner
            dependencies: Persisted jobs that must finish first
            related_entities: Domain objects to associate with the job

        Returns:
            Persisted Job
        """
        job = Job.create(
            command,
            args,
            confirmed=confirmed,
            queue=queue,
            priority=priority,
            now=self.clock.now(),
            max_retries=max_retries,
            max_runtime=max_runtime,
        )
        for dependency in dependencies:
            job.add_dependency(dependency)

        async with self.store.transaction():
            await self.store.create(job)
            for entity in related_entities:
                await self.store.add_related_entity(job, entity)

        logger.info(f"Created {job} in queue {job.queue} (state={job.state.value})")
        return job

    async def find_job(self, command: str, args: Optional[List[Any]] = None) -> Optional[Job]:
        return await self.store.find_by_command(command, args)

    async def get_job(self, command: str, args: Optional[List[Any]] = None) -> Job:
        """
        Raises:
            JobNotFoundError: no job has this command and args
        """
        job = await self.find_job(command, args)
        if job is None:
            raise JobNotFoundError(
                f'Found no job for command "{command}" with args {list(args or [])!r}.',
                command=command,
                args=list(args or []),
            )
        return job

    async def get_or_create_if_not_exists(self, command: str, args: Optional[List[Any]] = None) -> Job:
        """
        Return the job for (command, args), creating it if none exists.

        No uniqueness constraint is involved: the new row is inserted in NEW,
        and the earliest row for the pair wins. A losing insert is deleted.
        """
        existing = await self.find_job(command, args)
        if existing is not None:
            return existing

        job = Job.create(command, args, confirmed=False, now=self.clock.now())
        await self.store.create(job)

        first_job = await self.store.find_by_command(command, args)
        if first_job is None or first_job.id == job.id:
            job.set_state(JobState.PENDING, self.clock.now())
            await self.store.update(job)
            return job

        logger.info(f"Lost creation race for {job}; keeping job {first_job.id}")
        await self.store.delete(job)
        return first_job

    # =========================================================================
    # LOOKUP
    # =========================================================================

    async def get(self, job_id: int) -> Optional[Job]:
        """Get a job by id, from the cache when present."""
        job = self.cache.get(job_id)
        if job is not None:
            return job

        job = await self.store.get(job_id)
        if job is not None and not job.is_in_final_state():
            self.cache.put(job)
        return job

    async def find_by_ids(self, ids: Iterable[int]) -> List[Job]:
        return await self.store.find_by_ids(ids)

    async def find_incoming_dependencies(self, job: Job) -> List[Job]:
        return await self.store.find_incoming_dependencies(job)

    async def get_incoming_dependency_ids(self, job: Job) -> List[int]:
        return await self.store.get_incoming_dependency_ids(job.id)

    async def find_last_jobs_with_error(self, limit: int = 10) -> List[Job]:
        return await self.store.find_last_jobs_with_error(limit)

    async def get_available_queues(self) -> List[str]:
        return await self.store.get_available_queues()

    async def count_available_jobs(self, queue: str) -> int:
        return await self.store.count_available_jobs(queue)

    # =========================================================================
    # RELATED ENTITIES
    # =========================================================================

    async def add_related_entity(self, job: Job, entity: Any) -> None:
        await self.store.add_related_entity(job, entity)

    async def find_all_for_related_entity(self, entity: Any) -> List[Job]:
        return await self.store.find_all_for_related_entity(entity)

    async def find_job_for_related_entity(
        self,
        command: str,
        entity: Any,
        states: Sequence[JobState] = (),
    ) -> Optional[Job]:
        return await self.store.find_job_for_related_entity(command, entity, states)

    async def find_open_job_for_related_entity(self, command: str, entity: Any) -> Optional[Job]:
        return await self.store.find_open_job_for_related_entity(command, entity)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def add_dependency(self, job: Job, dependency: Job) -> None:
        job.add_dependency(dependency)
        if job.id is not None:
            await self.store.update(job)

    async def confirm(self, job: Job) -> Job:
        """NEW -> PENDING."""
        job.set_state(JobState.PENDING, self.clock.now())
        await self.store.update(job)
        return job

    async def acquire_next(
        self,
        worker_name: str,
        excluded_ids: Optional[List[int]] = None,
        excluded_queues: Sequence[str] = (),
        restricted_queues: Sequence[str] = (),
    ) -> Optional[Job]:
        return await self.scheduler.acquire_next(
            worker_name, excluded_ids, excluded_queues, restricted_queues
        )

    async def start(self, job: Job) -> Job:
        """
        PENDING -> RUNNING for a job this worker has locked.

        Raises:
            JobQueueLogicError: the job is not locked
        """
        if job.worker_name is None:
            raise JobQueueLogicError(f"{job} must be locked by a worker before it is started.")

        job.set_state(JobState.RUNNING, self.clock.now())
        await self.store.update(job)
        self.cache.put(job)
        return job

    async def heartbeat(self, job: Job) -> None:
        job.checked(self.clock.now())
        await self.store.update(job)

    async def report_result(self, job: Job, result: JobResult) -> Job:
        """Record the runner's output fields and close the job with its outcome."""
        job.record_result(result)
        await self.closer.close(job, result.outcome)
        return job

    async def cancel(self, job: Job) -> Job:
        await self.closer.close(job, JobState.CANCELED)
        return job


__all__ = ["JobService"]
