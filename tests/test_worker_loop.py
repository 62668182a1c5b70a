# ============================================================================
# WORKER LOOP TESTS
# ============================================================================
# STATUS: Tests - Poll, run, report cycle
# PURPOSE: Verify JobWorker with in-process runners
# ============================================================================
"""
Worker Loop Tests

Covers:
1. A successful runner closes the job FINISHED
2. A raising runner closes the job FAILED with a stack trace
3. Runtime is filled in from the clock
4. Heartbeats refresh checked_at while the runner works
5. Retries are picked up on a later poll
6. Stop event and loop error handling

Run with:
    pytest tests/test_worker_loop.py -v
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

from core.contracts import JobState
from core.models import JobResult
from worker.loop import JobWorker

from tests.conftest import START


def _worker(service, runner, **kwargs):
    kwargs.setdefault("poll_interval_seconds", 0.01)
    return JobWorker(service, runner, "worker-test", **kwargs)


async def _succeed(job):
    return JobResult(outcome=JobState.FINISHED, output=f"ran {job.command}\n", exit_code=0, runtime=1)


class TestRunOnce:

    def test_nothing_to_do(self, service):
        worker = _worker(service, _succeed)
        assert asyncio.run(worker.run_once()) is None
        assert worker.jobs_processed == 0

    def test_successful_job(self, service, store):
        created = asyncio.run(service.create_job("app:hello"))
        worker = _worker(service, _succeed)

        job = asyncio.run(worker.run_once())

        assert job.id == created.id
        row = store.row(job.id)
        assert row["state"] == JobState.FINISHED.value
        assert row["output"] == "ran app:hello\n"
        assert row["worker_name"] == "worker-test"
        assert worker.jobs_succeeded == 1
        assert worker.current_job is None

    def test_runner_exception_fails_job(self, service, store):
        async def explode(job):
            raise ValueError("boom")

        asyncio.run(service.create_job("app:explode"))
        worker = _worker(service, explode)

        job = asyncio.run(worker.run_once())

        row = store.row(job.id)
        assert row["state"] == JobState.FAILED.value
        assert row["error_output"] == "ValueError: boom"
        assert "Traceback" in row["stack_trace"]
        assert worker.jobs_failed == 1

    def test_runtime_filled_from_clock(self, service, store, clock):
        async def slow(job):
            clock.advance(seconds=7)
            return JobResult(outcome=JobState.FINISHED)

        asyncio.run(service.create_job("app:slow"))
        job = asyncio.run(_worker(service, slow).run_once())

        assert store.row(job.id)["runtime"] == 7

    def test_heartbeat_refreshes_checked_at(self, service, store, clock):
        async def long_running(job):
            clock.advance(seconds=30)
            await asyncio.sleep(0.1)
            return JobResult(outcome=JobState.FINISHED)

        asyncio.run(service.create_job("app:long"))
        worker = _worker(service, long_running, heartbeat_interval_seconds=0.01)
        job = asyncio.run(worker.run_once())

        row = store.row(job.id)
        assert row["started_at"] == START
        assert row["checked_at"] == START + timedelta(seconds=30)

    def test_respects_queue_restriction(self, service, store):
        async def scenario():
            await service.create_job("a", queue="mail")
            reports = await service.create_job("b", queue="reports")
            worker = _worker(service, _succeed, restricted_queues=["reports"])
            return reports, await worker.run_once(), await worker.run_once()

        reports, first, second = asyncio.run(scenario())
        assert first.id == reports.id
        assert second is None

    def test_failed_job_retried_on_later_poll(self, service, store, clock):
        attempts = []

        async def flaky(job):
            attempts.append(job.id)
            if len(attempts) == 1:
                return JobResult(outcome=JobState.FAILED, error_output="first try")
            return JobResult(outcome=JobState.FINISHED)

        async def scenario():
            original = await service.create_job("app:flaky", max_retries=2)
            worker = _worker(service, flaky)

            await worker.run_once()
            assert await worker.run_once() is None

            clock.advance(seconds=6)
            retry = await worker.run_once()
            return original, retry

        original, retry = asyncio.run(scenario())

        assert attempts == [original.id, retry.id]
        assert store.state_of(retry.id) == JobState.FINISHED
        assert store.state_of(original.id) == JobState.FINISHED


class TestRun:

    def test_stops_after_max_jobs(self, service, store):
        async def scenario():
            for command in ("a", "b", "c"):
                await service.create_job(command)
            worker = _worker(service, _succeed, max_jobs=2)
            return await worker.run()

        assert asyncio.run(scenario()) == 2
        states = sorted(store.state_of(i).value for i in store.rows)
        assert states == ["finished", "finished", "pending"]

    def test_stop_event_already_set(self, service):
        async def scenario():
            stop = asyncio.Event()
            stop.set()
            return await _worker(service, _succeed).run(stop)

        assert asyncio.run(scenario()) == 0

    def test_loop_survives_errors(self, service):
        async def scenario():
            stop = asyncio.Event()
            calls = []

            async def broken(*args, **kwargs):
                calls.append(1)
                if len(calls) == 2:
                    stop.set()
                raise RuntimeError("database unavailable")

            service.acquire_next = AsyncMock(side_effect=broken)
            worker = _worker(service, _succeed)
            processed = await worker.run(stop)
            return processed, len(calls), worker.running

        processed, calls, running = asyncio.run(scenario())

        assert processed == 0
        assert calls == 2
        assert running is False
