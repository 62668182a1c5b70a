# ============================================================================
# JOB SERVICE TESTS
# ============================================================================
# STATUS: Tests - Creation, lookup, lifecycle and queue statistics
# PURPOSE: Verify JobService end to end against the in-memory store
# ============================================================================
"""
Job Service Tests

Covers:
1. create_job with dependencies and related entities
2. get_or_create_if_not_exists, including concurrent callers
3. find_job / get_job lookups
4. confirm, start, heartbeat, report_result
5. Dependency-ordered execution across two jobs
6. Error listings, queue statistics and the read-through cache

Run with:
    pytest tests/test_job_service.py -v
"""

import asyncio
from dataclasses import dataclass

import pytest

from core.contracts import JobState
from core.exceptions import (
    InvalidStateTransitionError,
    JobNotFoundError,
    JobQueueLogicError,
)
from core.models import JobResult


@dataclass
class Order:
    id: int


@dataclass
class Invoice:
    id: int


# ============================================================================
# CREATION
# ============================================================================

class TestCreateJob:

    def test_defaults(self, service, store, clock):
        job = asyncio.run(service.create_job("app:report", ["--daily"]))

        assert job.id is not None
        assert job.state == JobState.PENDING
        assert job.queue == "default"
        assert job.priority == 0
        assert job.created_at == clock.now()
        assert job.execute_after < clock.now()

        row = store.row(job.id)
        assert row["command"] == "app:report"
        assert row["args"] == ["--daily"]

    def test_unconfirmed_job_is_new(self, service, store):
        job = asyncio.run(service.create_job("app:report", confirmed=False))
        assert store.state_of(job.id) == JobState.NEW

    def test_priority_and_queue(self, service, store):
        job = asyncio.run(service.create_job("app:report", queue="reports", priority=5))

        assert store.row(job.id)["queue"] == "reports"
        assert store.row(job.id)["sort_priority"] == -5

    def test_dependencies_are_persisted(self, service, store):
        async def scenario():
            first = await service.create_job("first")
            second = await service.create_job("second", dependencies=[first])
            return first, second

        first, second = asyncio.run(scenario())

        assert (second.id, first.id) in store.edges
        loaded = asyncio.run(store.get(second.id))
        assert [dep.id for dep in loaded.dependencies] == [first.id]
        assert asyncio.run(service.get_incoming_dependency_ids(first)) == [second.id]

    def test_related_entities(self, service):
        order = Order(7)

        async def scenario():
            job = await service.create_job("app:ship", related_entities=[order])
            return job, await service.find_all_for_related_entity(order)

        job, found = asyncio.run(scenario())
        assert [j.id for j in found] == [job.id]

    def test_invalid_queue_rejected(self, service, store):
        with pytest.raises(ValueError):
            asyncio.run(service.create_job("app:report", queue=""))
        assert store.rows == {}


class TestGetOrCreate:

    def test_creates_pending_job(self, service, store):
        job = asyncio.run(service.get_or_create_if_not_exists("app:sync", [1]))

        assert job.state == JobState.PENDING
        assert store.state_of(job.id) == JobState.PENDING

    def test_returns_existing_job(self, service, store):
        first = asyncio.run(service.get_or_create_if_not_exists("app:sync", [1]))
        again = asyncio.run(service.get_or_create_if_not_exists("app:sync", [1]))

        assert again.id == first.id
        assert len(store.rows) == 1

    def test_different_args_create_different_jobs(self, service, store):
        a = asyncio.run(service.get_or_create_if_not_exists("app:sync", [1]))
        b = asyncio.run(service.get_or_create_if_not_exists("app:sync", [2]))

        assert a.id != b.id

    def test_concurrent_callers_share_one_job(self, service, store):
        async def scenario():
            return await asyncio.gather(*[
                service.get_or_create_if_not_exists("app:sync", ["x"]) for _ in range(4)
            ])

        jobs = asyncio.run(scenario())

        assert len({job.id for job in jobs}) == 1
        assert len(store.rows) == 1
        assert store.state_of(jobs[0].id) == JobState.PENDING


class TestLookup:

    def test_find_job(self, service):
        created = asyncio.run(service.create_job("app:report", ["a", 1]))

        assert asyncio.run(service.find_job("app:report", ["a", 1])).id == created.id
        assert asyncio.run(service.find_job("app:report", ["a", 2])) is None

    def test_get_job_raises_when_missing(self, service):
        with pytest.raises(JobNotFoundError) as exc_info:
            asyncio.run(service.get_job("app:missing", ["x"]))

        assert exc_info.value.command == "app:missing"
        assert exc_info.value.command_args == ["x"]
        assert "app:missing" in str(exc_info.value)

    def test_find_by_ids_keeps_order(self, service):
        async def scenario():
            a = await service.create_job("a")
            b = await service.create_job("b")
            return a, b, await service.find_by_ids([b.id, a.id, 999])

        a, b, found = asyncio.run(scenario())
        assert [j.id for j in found] == [b.id, a.id]

    def test_get_reads_through_cache(self, service, store):
        job = asyncio.run(service.create_job("a"))

        first = asyncio.run(service.get(job.id))
        second = asyncio.run(service.get(job.id))

        assert first is second
        assert job.id in service.cache

    def test_get_does_not_cache_final_jobs(self, service, store):
        job = asyncio.run(service.create_job("a"))
        asyncio.run(service.cancel(job))

        loaded = asyncio.run(service.get(job.id))
        assert loaded.state == JobState.CANCELED
        assert job.id not in service.cache

    def test_get_missing(self, service):
        assert asyncio.run(service.get(42)) is None


# ============================================================================
# LIFECYCLE
# ============================================================================

class TestLifecycle:

    def test_confirm(self, service, store):
        async def scenario():
            job = await service.create_job("a", confirmed=False)
            return await service.confirm(job)

        job = asyncio.run(scenario())
        assert store.state_of(job.id) == JobState.PENDING

    def test_confirm_pending_is_noop(self, service, store):
        job = asyncio.run(service.create_job("a"))
        asyncio.run(service.confirm(job))
        assert store.state_of(job.id) == JobState.PENDING

    def test_new_job_is_not_scheduled_until_confirmed(self, service):
        job = asyncio.run(service.create_job("a", confirmed=False))
        assert asyncio.run(service.acquire_next("worker-a")) is None

        asyncio.run(service.confirm(job))
        assert asyncio.run(service.acquire_next("worker-a")).id == job.id

    def test_start_requires_lock(self, service):
        job = asyncio.run(service.create_job("a"))

        with pytest.raises(JobQueueLogicError):
            asyncio.run(service.start(job))

    def test_start_stamps_times(self, service, store, clock):
        asyncio.run(service.create_job("a"))
        job = asyncio.run(service.acquire_next("worker-a"))
        asyncio.run(service.start(job))

        row = store.row(job.id)
        assert row["state"] == JobState.RUNNING.value
        assert row["started_at"] == clock.now()
        assert row["checked_at"] == clock.now()
        assert row["worker_name"] == "worker-a"

    def test_heartbeat(self, service, store, clock):
        asyncio.run(service.create_job("a"))
        job = asyncio.run(service.acquire_next("worker-a"))
        asyncio.run(service.start(job))

        clock.advance(seconds=30)
        asyncio.run(service.heartbeat(job))
        assert store.row(job.id)["checked_at"] == clock.now()

    def test_report_result(self, service, store):
        asyncio.run(service.create_job("a"))
        job = asyncio.run(service.acquire_next("worker-a"))
        asyncio.run(service.start(job))

        result = JobResult(outcome=JobState.FINISHED, output="done\n", exit_code=0, runtime=4)
        asyncio.run(service.report_result(job, result))

        row = store.row(job.id)
        assert row["state"] == JobState.FINISHED.value
        assert row["output"] == "done\n"
        assert row["exit_code"] == 0
        assert row["runtime"] == 4

    def test_cancel_running_job_is_illegal(self, service, store):
        asyncio.run(service.create_job("a"))
        job = asyncio.run(service.acquire_next("worker-a"))
        asyncio.run(service.start(job))

        with pytest.raises(InvalidStateTransitionError):
            asyncio.run(service.cancel(job))
        assert store.state_of(job.id) == JobState.RUNNING

    def test_add_dependency_before_start(self, service, store):
        async def scenario():
            first = await service.create_job("first")
            second = await service.create_job("second", confirmed=False)
            await service.add_dependency(second, first)
            return first, second

        first, second = asyncio.run(scenario())
        assert (second.id, first.id) in store.edges

    def test_dependency_ordering(self, service, store):
        async def scenario():
            q1 = await service.create_job("q1")
            q2 = await service.create_job("q2", priority=5, dependencies=[q1])

            picked = await service.acquire_next("worker-a")
            assert picked.id == q1.id
            assert await service.acquire_next("worker-b") is None

            await service.start(picked)
            await service.report_result(picked, JobResult(outcome=JobState.FINISHED))

            picked = await service.acquire_next("worker-b")
            return q2, picked

        q2, picked = asyncio.run(scenario())
        assert picked.id == q2.id


# ============================================================================
# LISTINGS AND STATISTICS
# ============================================================================

class TestListings:

    def test_last_jobs_with_error(self, service, clock):
        async def scenario():
            ids = []
            for command, outcome in [
                ("a", JobState.FAILED),
                ("b", JobState.FINISHED),
                ("c", JobState.TERMINATED),
            ]:
                await service.create_job(command)
                job = await service.acquire_next("worker-a")
                await service.start(job)
                clock.advance(seconds=1)
                await service.report_result(job, JobResult(outcome=outcome))
                ids.append(job.id)
            return ids, await service.find_last_jobs_with_error(10)

        (a, _, c), found = asyncio.run(scenario())
        assert [job.id for job in found] == [c, a]

    def test_last_jobs_with_error_limit(self, service):
        async def scenario():
            for command in ("a", "b"):
                await service.create_job(command)
                job = await service.acquire_next("worker-a")
                await service.start(job)
                await service.report_result(job, JobResult(outcome=JobState.FAILED))
            return await service.find_last_jobs_with_error(1)

        assert len(asyncio.run(scenario())) == 1

    def test_available_queues_and_counts(self, service):
        async def scenario():
            await service.create_job("a", queue="mail")
            await service.create_job("b", queue="mail", confirmed=False)
            await service.create_job("c", queue="reports")
            canceled = await service.create_job("d", queue="archive")
            await service.cancel(canceled)
            return (
                await service.get_available_queues(),
                await service.count_available_jobs("mail"),
                await service.count_available_jobs("archive"),
            )

        queues, mail, archive = asyncio.run(scenario())

        assert queues == ["mail", "reports"]
        assert mail == 2
        assert archive == 0


class TestRelatedEntities:

    def test_find_job_for_related_entity(self, service):
        order = Order(1)

        async def scenario():
            ship = await service.create_job("app:ship", related_entities=[order])
            await service.create_job("app:bill", related_entities=[order])
            return ship, await service.find_job_for_related_entity("app:ship", order)

        ship, found = asyncio.run(scenario())
        assert found.id == ship.id

    def test_entities_of_different_classes_do_not_collide(self, service):
        async def scenario():
            await service.create_job("app:ship", related_entities=[Order(1)])
            return await service.find_all_for_related_entity(Invoice(1))

        assert asyncio.run(scenario()) == []

    def test_find_open_job_ignores_closed_jobs(self, service):
        order = Order(3)

        async def scenario():
            closed = await service.create_job("app:ship", related_entities=[order])
            await service.cancel(closed)
            assert await service.find_open_job_for_related_entity("app:ship", order) is None

            open_job = await service.create_job("app:ship", ["again"])
            await service.add_related_entity(open_job, order)
            return open_job, await service.find_open_job_for_related_entity("app:ship", order)

        open_job, found = asyncio.run(scenario())
        assert found.id == open_job.id

    def test_filter_by_state(self, service):
        order = Order(4)

        async def scenario():
            job = await service.create_job("app:ship", related_entities=[order])
            await service.cancel(job)
            return (
                job,
                await service.find_job_for_related_entity("app:ship", order, [JobState.CANCELED]),
                await service.find_job_for_related_entity("app:ship", order, [JobState.PENDING]),
            )

        job, canceled, pending = asyncio.run(scenario())
        assert canceled.id == job.id
        assert pending is None
