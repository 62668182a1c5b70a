# ============================================================================
# WORKER LOOP
# ============================================================================
# STATUS: Core - Poll, lock, run, report
# PURPOSE: Drive jobs through the queue with an injected runner
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Loop

Each iteration:
    1. Lock the next startable job (JobService.acquire_next)
    2. Mark it RUNNING
    3. Await the runner, heartbeating checked_at while it works
    4. Report the JobResult, which closes the job

The runner is any ``async def runner(job) -> JobResult``. An exception
escaping the runner is reported as a FAILED result with its traceback.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from core.logging import log_context
from core.models import Job, JobResult
from services.job_service import JobService

logger = logging.getLogger(__name__)

Runner = Callable[[Job], Awaitable[JobResult]]


class JobWorker:
    """Polls the queue and runs one job at a time."""

    def __init__(
        self,
        service: JobService,
        runner: Runner,
        worker_name: str,
        restricted_queues: Sequence[str] = (),
        excluded_queues: Sequence[str] = (),
        poll_interval_seconds: float = 1.0,
        heartbeat_interval_seconds: float = 30.0,
        max_jobs: Optional[int] = None,
    ):
        """
        Initialize worker.

        Args:
            service: Job service (store, scheduler, closer)
            runner: Executes a job's command and returns its result
            worker_name: Lock owner name
            restricted_queues: Only take jobs from these queues (empty = any)
            excluded_queues: Never take jobs from these queues
            poll_interval_seconds: Sleep after a poll that found nothing
            heartbeat_interval_seconds: How often checked_at is refreshed
            max_jobs: Stop after this many jobs (None = until stopped)
        """
        self.service = service
        self.runner = runner
        self.worker_name = worker_name
        self.restricted_queues = list(restricted_queues)
        self.excluded_queues = list(excluded_queues)
        self.poll_interval_seconds = poll_interval_seconds
        self.heartbeat_interval_seconds = heartbeat_interval_seconds
        self.max_jobs = max_jobs

        # State
        self.running = False
        self.current_job: Optional[Job] = None

        # Stats
        self.jobs_processed = 0
        self.jobs_succeeded = 0
        self.jobs_failed = 0

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> int:
        """
        Run until stop_event is set or max_jobs jobs have been processed.

        Returns:
            Number of jobs processed
        """
        stop_event = stop_event or asyncio.Event()
        self.running = True
        logger.info(
            f"Worker {self.worker_name} started "
            f"(queues={self.restricted_queues or 'all'}, excluded={self.excluded_queues})"
        )

        try:
            while not stop_event.is_set():
                if self.max_jobs is not None and self.jobs_processed >= self.max_jobs:
                    logger.info(f"Reached max_jobs={self.max_jobs}")
                    break

                try:
                    job = await self.run_once()
                except Exception as e:
                    logger.exception(f"Error in worker loop: {e}")
                    job = None

                if job is None:
                    await self._idle(stop_event)
        finally:
            self.running = False

        logger.info(
            f"Worker {self.worker_name} stopped. Stats: processed={self.jobs_processed}, "
            f"succeeded={self.jobs_succeeded}, failed={self.jobs_failed}"
        )
        return self.jobs_processed

    async def run_once(self) -> Optional[Job]:
        """Lock, run and report a single job. None when nothing was eligible."""
        job = await self.service.acquire_next(
            self.worker_name,
            excluded_queues=self.excluded_queues,
            restricted_queues=self.restricted_queues,
        )
        if job is None:
            return None

        with log_context(job_id=job.id, worker_name=self.worker_name, queue=job.queue, command=job.command):
            self.current_job = job
            try:
                await self.service.start(job)
                result = await self._execute(job)
                await self.service.report_result(job, result)
            finally:
                self.current_job = None

            self.jobs_processed += 1
            if result.succeeded:
                self.jobs_succeeded += 1
            else:
                self.jobs_failed += 1
            logger.info(f"{job} reported {result.outcome.value}, now {job.state.value}")

        return job

    async def _execute(self, job: Job) -> JobResult:
        started = self.service.clock.now()
        heartbeat = asyncio.create_task(self._heartbeat(job))
        try:
            result = await self.runner(job)
        except Exception as e:
            logger.exception(f"Runner raised for {job}")
            result = JobResult.from_exception(e)
        finally:
            heartbeat.cancel()
            try:
                await heartbeat
            except asyncio.CancelledError:
                pass

        if result.runtime is None:
            elapsed = (self.service.clock.now() - started).total_seconds()
            result = result.model_copy(update={"runtime": max(0, int(elapsed))})
        return result

    async def _heartbeat(self, job: Job) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval_seconds)
            try:
                await self.service.heartbeat(job)
            except Exception as e:
                logger.warning(f"Heartbeat failed for {job}: {e}")

    async def _idle(self, stop_event: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval_seconds)
        except asyncio.TimeoutError:
            pass


__all__ = ["JobWorker", "Runner"]
