# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# STATUS: Core - Database access layer
# PURPOSE: Job storage for the scheduler, closer and job service
# CREATED: 19 OCT 2026
# ============================================================================
"""
Repositories Module

Provides job storage. Uses psycopg3 async with connection pooling.

Usage:
    from repositories import DatabasePool, JobRepository

    async with DatabasePool() as pool:
        store = JobRepository(pool)
        job = await store.get(job_id)
"""

from .base import JobStore
from .database import DatabasePool, close_pool, get_pool, init_pool
from .job_cache import JobCache
from .job_repo import JobRepository
from .schema import JobQueueSchema

__all__ = [
    "JobStore",
    "JobRepository",
    "JobCache",
    "JobQueueSchema",
    "DatabasePool",
    "get_pool",
    "init_pool",
    "close_pool",
]
