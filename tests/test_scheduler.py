# ============================================================================
# SCHEDULER TESTS
# ============================================================================
# STATUS: Tests - Selection order, eligibility and lock races
# PURPOSE: Verify acquire_next against the in-memory store
# ============================================================================
"""
Scheduler Tests

Covers:
1. Priority then id ordering
2. execute_after eligibility under a frozen clock
3. Unstartable candidates are skipped and reported in excluded_ids
4. Queue restriction and exclusion
5. Concurrent workers: at most one lock per job

Run with:
    pytest tests/test_scheduler.py -v
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from core.contracts import PRIORITY_HIGH, PRIORITY_LOW


def _create(service, command="app:work", **kwargs):
    return asyncio.run(service.create_job(command, **kwargs))


class TestSelection:

    def test_empty_queue_returns_none(self, service):
        assert asyncio.run(service.scheduler.acquire_next("worker-a")) is None

    def test_highest_priority_first(self, service):
        low = _create(service, "low", priority=PRIORITY_LOW)
        default = _create(service, "default")
        high = _create(service, "high", priority=PRIORITY_HIGH)

        picked = [asyncio.run(service.scheduler.acquire_next("worker-a")) for _ in range(3)]
        assert [job.id for job in picked] == [high.id, default.id, low.id]

    def test_ties_break_on_id(self, service):
        first = _create(service, "a")
        second = _create(service, "b")
        assert asyncio.run(service.scheduler.acquire_next("worker-a")).id == first.id
        assert asyncio.run(service.scheduler.acquire_next("worker-a")).id == second.id

    def test_locks_the_job(self, service, store):
        job = _create(service)
        locked = asyncio.run(service.scheduler.acquire_next("worker-a"))

        assert locked.worker_name == "worker-a"
        assert store.row(job.id)["worker_name"] == "worker-a"
        assert asyncio.run(service.scheduler.acquire_next("worker-b")) is None

    def test_future_execute_after_is_not_eligible(self, service, store, clock):
        job = _create(service)
        store.row(job.id)["execute_after"] = clock.now() + timedelta(seconds=10)

        assert asyncio.run(service.scheduler.acquire_next("worker-a")) is None

        clock.advance(seconds=10)
        # execute_after must be strictly earlier than now
        assert asyncio.run(service.scheduler.acquire_next("worker-a")) is None

        clock.advance(seconds=1)
        assert asyncio.run(service.scheduler.acquire_next("worker-a")).id == job.id

    def test_non_pending_jobs_are_ignored(self, service):
        _create(service, confirmed=False)
        assert asyncio.run(service.scheduler.acquire_next("worker-a")) is None

    def test_unstartable_candidate_is_skipped_and_reported(self, service):
        q1 = _create(service, "q1")
        q2 = _create(service, "q2", priority=PRIORITY_HIGH, dependencies=[q1])

        excluded = []
        picked = asyncio.run(service.scheduler.acquire_next("worker-a", excluded))

        assert picked.id == q1.id
        assert excluded == [q2.id]

    def test_caller_excluded_ids_are_respected(self, service):
        first = _create(service, "a")
        second = _create(service, "b")
        picked = asyncio.run(service.scheduler.acquire_next("worker-a", [first.id]))
        assert picked.id == second.id

    def test_restricted_queues(self, service):
        _create(service, "a", queue="default")
        mail = _create(service, "b", queue="mail")
        picked = asyncio.run(service.scheduler.acquire_next("worker-a", restricted_queues=["mail"]))
        assert picked.id == mail.id

    def test_excluded_queues(self, service):
        _create(service, "a", queue="reports", priority=PRIORITY_HIGH)
        default = _create(service, "b")
        picked = asyncio.run(service.scheduler.acquire_next("worker-a", excluded_queues=["reports"]))
        assert picked.id == default.id

    @pytest.mark.parametrize("name", ["", "w" * 51])
    def test_rejects_bad_worker_names(self, service, name):
        with pytest.raises(ValueError):
            asyncio.run(service.scheduler.acquire_next(name))


class TestLocking:

    def test_lost_lock_moves_on_to_next_candidate(self, service, store):
        first = _create(service, "a")
        second = _create(service, "b")
        store.acquire_lock = AsyncMock(side_effect=[0, 1])

        excluded = []
        picked = asyncio.run(service.scheduler.acquire_next("worker-a", excluded))

        assert picked.id == second.id
        assert picked.worker_name == "worker-a"
        assert excluded == [first.id]

    def test_concurrent_workers_single_job(self, service, store):
        job = _create(service)

        async def race():
            return await asyncio.gather(*[
                service.scheduler.acquire_next(f"worker-{n}") for n in range(5)
            ])

        results = asyncio.run(race())
        winners = [r for r in results if r is not None]

        assert len(winners) == 1
        assert store.row(job.id)["worker_name"] == winners[0].worker_name
        # Every worker reached the lock write, only one affected a row
        assert len([a for a in store.lock_attempts if a[0] == job.id]) == 5

    def test_concurrent_workers_many_jobs(self, service):
        jobs = [_create(service, f"cmd-{n}") for n in range(3)]

        async def race():
            return await asyncio.gather(*[
                service.scheduler.acquire_next(f"worker-{n}") for n in range(6)
            ])

        winners = [r for r in asyncio.run(race()) if r is not None]

        assert sorted(w.id for w in winners) == sorted(j.id for j in jobs)
        assert len({w.worker_name for w in winners}) == 3


class TestCache:

    def test_locked_job_is_cached(self, service):
        job = _create(service)
        asyncio.run(service.scheduler.acquire_next("worker-a"))
        assert job.id in service.cache

    def test_unstartable_job_is_evicted(self, service):
        q1 = _create(service, "q1")
        q2 = _create(service, "q2", priority=PRIORITY_HIGH, dependencies=[q1])
        service.cache.put(q2)

        asyncio.run(service.scheduler.acquire_next("worker-a"))

        assert q2.id not in service.cache
