# ============================================================================
# JOB CLOSER
# ============================================================================
# STATUS: Core - Finalize jobs and cascade outcomes
# PURPOSE: Apply a final state in one transaction, spawning retries and
#          cancelling dependents as needed
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Closer

close(job, final_state) applies the final state inside one store transaction.
Any error rolls the transaction back, restores the state, closed_at and
retry links of every in-memory job the close touched, evicts them from the
cache, and is re-raised.

Per proposed state:

    CANCELED                      cancel; retry job -> cancel its original,
                                  otherwise cancel every incoming dependent
    FAILED/TERMINATED/INCOMPLETE  retry job -> set state, then close the
                                  original with the same state (separate
                                  visited set)
                                  retries left -> spawn a retry job, the
                                  original stays RUNNING
                                  otherwise -> set state, cancel PENDING/NEW
                                  incoming dependents
    FINISHED                      set state (and the original's, for a retry
                                  job); dependents become startable lazily

Dependents are processed from a worklist with a visited set keyed by job id,
so diamond-shaped graphs close each job once and deep graphs do not recurse.
"""

import inspect
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Tuple, Union

from core.clock import Clock
from core.contracts import JobState
from core.exceptions import JobQueueLogicError
from core.logging import log_checkpoint, log_context
from core.models import Job
from core.retry import RetryScheduler
from repositories.base import JobStore
from repositories.job_cache import JobCache

logger = logging.getLogger(__name__)

# (job, proposed state) -> state to apply. None keeps the proposal.
StateChangeHook = Callable[
    [Job, JobState],
    Union[JobState, str, None, Awaitable[Union[JobState, str, None]]],
]

FAILURE_STATES = (JobState.FAILED, JobState.TERMINATED, JobState.INCOMPLETE)

# id(job) -> (job, fields as they were before this close touched it)
_Undo = Dict[int, Tuple[Job, Dict[str, Any]]]

# Job fields a close may change in memory
_UNDO_FIELDS = ("state", "closed_at", "retry_jobs", "original_job")


class JobCloser:
    """Finalizes jobs and cascades through dependents and the retry chain."""

    def __init__(
        self,
        store: JobStore,
        retry_scheduler: RetryScheduler,
        clock: Clock,
        state_change_hook: Optional[StateChangeHook] = None,
        cache: Optional[JobCache] = None,
    ):
        self.store = store
        self.retry_scheduler = retry_scheduler
        self.clock = clock
        self.state_change_hook = state_change_hook
        self.cache = cache if cache is not None else JobCache()

    async def close(self, job: Job, final_state: Union[JobState, str]) -> None:
        """
        Close a job.

        Raises:
            JobQueueLogicError: final_state is not CANCELED, FINISHED,
                FAILED, TERMINATED or INCOMPLETE (after the hook)
            InvalidStateTransitionError: a cascaded transition is illegal
        """
        processed: List[Job] = []
        undo: _Undo = {}

        with log_context(job_id=job.id, queue=job.queue, command=job.command):
            try:
                async with self.store.transaction():
                    await self._close(job, self._coerce_state(final_state), processed, undo)
            except Exception:
                self._undo(undo, processed + [job])
                logger.exception(
                    f"Closing {job} as {getattr(final_state, 'value', final_state)} failed, rolled back"
                )
                raise

            for closed in processed:
                if closed.is_in_final_state() and not closed.is_retry_job():
                    self.cache.invalidate(closed)
                else:
                    self.cache.put(closed)

            log_checkpoint(
                "job_closed",
                {
                    "requested_state": JobState(final_state).value,
                    "state": job.state.value,
                    "processed": [closed.id for closed in processed],
                },
                logger=logger,
            )

    @staticmethod
    def _coerce_state(state: Union[JobState, str]) -> JobState:
        try:
            return JobState(state)
        except ValueError:
            raise JobQueueLogicError(f'Non allowed state "{state}" in close().') from None

    async def _close(
        self,
        job: Job,
        final_state: JobState,
        processed: List[Job],
        undo: _Undo,
    ) -> None:
        visited: Set[int] = set()
        worklist: Deque[Tuple[Job, JobState]] = deque([(job, final_state)])

        while worklist:
            current, proposed = worklist.popleft()

            key = current.id if current.id is not None else id(current)
            if key in visited:
                continue
            visited.add(key)

            if current.is_in_final_state():
                continue

            processed.append(current)

            if current.is_retry_job() or not current.retry_jobs:
                proposed = await self._apply_hook(current, proposed)

            if proposed == JobState.CANCELED:
                await self._set_state(current, JobState.CANCELED, undo)

                if current.is_retry_job():
                    worklist.append((await self._original_of(current), JobState.CANCELED))
                    continue

                for dependent in await self.store.find_incoming_dependencies(current):
                    worklist.append((dependent, JobState.CANCELED))

            elif proposed in FAILURE_STATES:
                if current.is_retry_job():
                    await self._set_state(current, proposed, undo)
                    # TODO: decide whether the original should share this visited set;
                    # a dependent reachable from both sides is processed twice
                    await self._close(await self._original_of(current), proposed, processed, undo)
                    continue

                if current.is_retry_allowed():
                    processed.append(await self._spawn_retry(current, undo))
                    continue

                await self._set_state(current, proposed, undo)

                for dependent in await self.store.find_incoming_dependencies(current):
                    # Dependents past NEW/PENDING indicate inconsistent data; leave them
                    if not dependent.is_pending() and not dependent.is_new():
                        continue
                    worklist.append((dependent, JobState.CANCELED))

            elif proposed == JobState.FINISHED:
                if current.is_retry_job():
                    original = await self._original_of(current)
                    await self._set_state(original, JobState.FINISHED, undo)
                    processed.append(original)
                await self._set_state(current, JobState.FINISHED, undo)

            else:
                raise JobQueueLogicError(f'Non allowed state "{proposed.value}" in close().')

    async def _apply_hook(self, job: Job, proposed: JobState) -> JobState:
        if self.state_change_hook is None:
            return proposed

        result = self.state_change_hook(job, proposed)
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            return proposed

        new_state = self._coerce_state(result)
        if new_state != proposed:
            logger.info(f"State change hook replaced {proposed.value} with {new_state.value} for {job}")
        return new_state

    @staticmethod
    def _remember(job: Job, undo: _Undo) -> None:
        if id(job) not in undo:
            fields = {name: getattr(job, name) for name in _UNDO_FIELDS}
            fields["retry_jobs"] = list(job.retry_jobs)
            undo[id(job)] = (job, fields)

    def _undo(self, undo: _Undo, touched: List[Job]) -> None:
        """Put in-memory jobs back as they were and drop them from the cache."""
        for job, fields in undo.values():
            for name, value in fields.items():
                setattr(job, name, value)
            self.cache.invalidate(job)
        for job in touched:
            self.cache.invalidate(job)

    async def _set_state(self, job: Job, state: JobState, undo: _Undo) -> None:
        self._remember(job, undo)
        job.set_state(state, self.clock.now())
        await self.store.update(job)

    async def _original_of(self, job: Job) -> Job:
        if job.original_job is None:
            original = await self.store.get(job.original_job_id)
            if original is None:
                raise JobQueueLogicError(f"Original job {job.original_job_id} of {job} does not exist.")
            job.original_job = original
        return job.original_job

    async def _spawn_retry(self, job: Job, undo: _Undo) -> Job:
        self._remember(job, undo)
        retry_job = job.clone_for_retry(self.clock.now())
        job.add_retry_job(retry_job)
        retry_job.execute_after = self.retry_scheduler.schedule_next_retry(job)

        await self.store.create(retry_job)
        await self.store.update(job)

        with log_context(job_id=job.id):
            log_checkpoint(
                "retry_scheduled",
                {
                    "retry_job_id": retry_job.id,
                    "attempt": len(job.retry_jobs),
                    "max_retries": job.max_retries,
                    "execute_after": retry_job.execute_after.isoformat(),
                },
                logger=logger,
            )
        return retry_job


__all__ = ["JobCloser", "StateChangeHook"]
