# ============================================================================
# WORKER MAIN ENTRY POINT
# ============================================================================
# STATUS: Core - Worker process entry point
# PURPOSE: Start a job queue worker in standalone mode
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Main Entry Point

Starts a worker process that:
1. Opens the PostgreSQL pool
2. Imports the runner named by JOB_RUNNER
3. Polls, runs and closes jobs until SIGINT/SIGTERM

Usage:
    JOB_RUNNER=myapp.jobs:run python -m worker.main

Environment Variables:
    JOB_RUNNER: "module:attribute" of an async runner(job) -> JobResult
    JOBQUEUE_WORKER_NAME: Lock owner name (default worker-<hostname>)
    JOBQUEUE_QUEUES: Comma-separated queues to take jobs from (default all)
    JOBQUEUE_EXCLUDED_QUEUES: Comma-separated queues to skip
    JOBQUEUE_RETRY_BACKOFF / JOBQUEUE_RETRY_BASE / JOBQUEUE_RETRY_MAX_DELAY
    JOBQUEUE_POLL_INTERVAL / JOBQUEUE_HEARTBEAT_INTERVAL / JOBQUEUE_MAX_JOBS
    DATABASE_URL or POSTGRES_*: PostgreSQL connection
    HEALTH_PORT: Health server port (default 8000)
    LOG_LEVEL / LOG_FORMAT: Logging level and "json" for structured output
"""

import asyncio
import importlib
import logging
import os
import signal
from typing import Optional

from aiohttp import web

from __version__ import BUILD_DATE, __version__
from core.config import get_defaults
from core.logging import configure_logging, get_logger, ComponentType
from repositories import DatabasePool, JobRepository
from services import JobService
from worker.loop import JobWorker, Runner

logger = get_logger(__name__, ComponentType.WORKER)

# Worker state for health checks
_worker_healthy = True
_worker_status = "starting"
_worker: Optional[JobWorker] = None


# ============================================================================
# HEALTH SERVER
# ============================================================================

async def health_handler(request):
    """Health check endpoint with version and loop statistics."""
    response_data = {
        "status": "healthy" if _worker_healthy else "unhealthy",
        "worker_status": _worker_status,
        "version": __version__,
        "build_date": BUILD_DATE,
        "worker_name": _worker.worker_name if _worker else "unknown",
        "running": _worker.running if _worker else False,
    }

    if _worker:
        response_data["current_job_id"] = _worker.current_job.id if _worker.current_job else None
        response_data["stats"] = {
            "jobs_processed": _worker.jobs_processed,
            "jobs_succeeded": _worker.jobs_succeeded,
            "jobs_failed": _worker.jobs_failed,
        }

    if _worker_healthy:
        return web.json_response(response_data)
    return web.json_response(response_data, status=503)


async def start_health_server(port: int = 8000) -> web.AppRunner:
    """Start minimal HTTP server for health probes."""
    app = web.Application()
    app.router.add_get("/", health_handler)
    app.router.add_get("/health", health_handler)
    app.router.add_get("/livez", health_handler)
    app.router.add_get("/readyz", health_handler)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", port)
    await site.start()
    logger.info(f"Health server started on port {port}")
    return runner


# ============================================================================
# RUNNER LOADING
# ============================================================================

def load_runner(spec: Optional[str] = None) -> Runner:
    """
    Import the job runner.

    Args:
        spec: "package.module:attribute" (defaults to JOB_RUNNER)

    Raises:
        ValueError: spec is missing or malformed
        ImportError / AttributeError: the target cannot be imported
    """
    spec = spec or os.environ.get("JOB_RUNNER", "")
    module_name, _, attribute = spec.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"JOB_RUNNER must look like 'module:attribute', got {spec!r}")

    module = importlib.import_module(module_name)
    runner = getattr(module, attribute)
    logger.info(f"Loaded job runner {spec}")
    return runner


# ============================================================================
# MAIN
# ============================================================================

async def main() -> None:
    """Main entry point."""
    global _worker_healthy, _worker_status, _worker

    configure_logging(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
    )

    logger.info("=" * 60)
    logger.info(f"Job Queue Worker Starting v{__version__}")
    logger.info("=" * 60)

    defaults = get_defaults()
    health_runner = await start_health_server(defaults.worker.health_port)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Not supported on this platform's event loop
            pass

    try:
        runner = load_runner()

        async with DatabasePool() as pool:
            service = JobService.build(JobRepository(pool), retry_defaults=defaults.retry)
            _worker = JobWorker(
                service,
                runner,
                worker_name=defaults.scheduler.worker_name,
                restricted_queues=defaults.scheduler.restricted_queues,
                excluded_queues=defaults.scheduler.excluded_queues,
                poll_interval_seconds=defaults.worker.poll_interval_seconds,
                heartbeat_interval_seconds=defaults.worker.heartbeat_interval_seconds,
                max_jobs=defaults.worker.max_jobs,
            )
            logger.info(f"Worker name: {_worker.worker_name}")

            _worker_status = "running"
            await _worker.run(stop_event)
            _worker_status = "stopped"
    except Exception as e:
        logger.exception(f"Worker failed: {e}")
        _worker_healthy = False
        _worker_status = f"error: {str(e)[:100]}"
        raise
    finally:
        await health_runner.cleanup()

    logger.info("Job Queue Worker stopped")


def run() -> None:
    """Synchronous entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
