# ============================================================================
# WORKER MODULE
# ============================================================================
# STATUS: Core - Job execution loop
# PURPOSE: Poll the queue, run jobs, report results
# ============================================================================
"""
Worker Module

Usage:
    from worker import JobWorker

    worker = JobWorker(service, runner, worker_name="worker-a")
    await worker.run(stop_event)
"""

from worker.loop import JobWorker, Runner

__all__ = [
    "JobWorker",
    "Runner",
]
