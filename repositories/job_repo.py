# ============================================================================
# JOB REPOSITORY
# ============================================================================
# STATUS: Core - PostgreSQL job store
# PURPOSE: Database access for the jobs, job_dependencies and
#          job_related_entities tables
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Repository

PostgreSQL implementation of JobStore on psycopg3 async.

Calls made inside ``async with repo.transaction():`` share one pooled
connection and one transaction; calls outside a transaction each borrow a
connection and commit on return.
"""

import contextvars
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from psycopg import AsyncConnection, sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from core.contracts import AVAILABLE_STATES, JobState
from core.exceptions import JobQueueLogicError
from core.models import Job
from core.related import related_entity_identifier
from .base import JobStore
from .database import TABLE_DEPENDENCIES, TABLE_JOBS, TABLE_RELATED_ENTITIES

logger = logging.getLogger(__name__)

# Persisted columns, in model order (relations are excluded fields)
JOB_COLUMNS: List[str] = [
    name for name, field_info in Job.model_fields.items()
    if not field_info.exclude and name != "id"
]

ERROR_STATES = [JobState.FAILED.value, JobState.TERMINATED.value]


class JobRepository(JobStore):
    """Repository for Job entities."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool
        self._tx_conn: contextvars.ContextVar[Optional[AsyncConnection]] = contextvars.ContextVar(
            f"jobqueue_tx_{id(self)}", default=None
        )

    # =========================================================================
    # CONNECTIONS / TRANSACTIONS
    # =========================================================================

    @asynccontextmanager
    async def _connection(self):
        conn = self._tx_conn.get()
        if conn is not None:
            yield conn
            return

        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            yield conn

    @asynccontextmanager
    async def transaction(self):
        conn = self._tx_conn.get()
        if conn is not None:
            # Nested block: savepoint on the bound connection
            async with conn.transaction():
                yield
            return

        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            async with conn.transaction():
                token = self._tx_conn.set(conn)
                try:
                    yield
                finally:
                    self._tx_conn.reset(token)

    # =========================================================================
    # WRITES
    # =========================================================================

    def _row_params(self, job: Job) -> Dict[str, Any]:
        row = job.to_row()
        row["args"] = Jsonb(row["args"])
        return {column: row[column] for column in JOB_COLUMNS}

    async def create(self, job: Job) -> Job:
        """
        Insert a job.

        Args:
            job: Unsaved Job (id is None)

        Returns:
            The same job with id assigned
        """
        if job.id is not None:
            raise JobQueueLogicError(f"{job} is already persisted.")

        params = self._row_params(job)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING id").format(
            TABLE_JOBS,
            sql.SQL(", ").join(sql.Identifier(c) for c in JOB_COLUMNS),
            sql.SQL(", ").join(sql.Placeholder(c) for c in JOB_COLUMNS),
        )

        async with self.transaction():
            async with self._connection() as conn:
                result = await conn.execute(query, params)
                row = await result.fetchone()
                job.id = row["id"]
                await self._insert_dependencies(conn, job)

        logger.info(f"Created job {job.id} command={job.command} queue={job.queue}")
        return job

    async def update(self, job: Job) -> None:
        if job.id is None:
            raise JobQueueLogicError(f"{job} has not been persisted.")

        params = self._row_params(job)
        params["id"] = job.id
        query = sql.SQL("UPDATE {} SET {} WHERE id = %(id)s").format(
            TABLE_JOBS,
            sql.SQL(", ").join(
                sql.SQL("{} = {}").format(sql.Identifier(c), sql.Placeholder(c))
                for c in JOB_COLUMNS
            ),
        )

        async with self.transaction():
            async with self._connection() as conn:
                await conn.execute(query, params)
                await self._insert_dependencies(conn, job)

        logger.debug(f"Updated job {job.id} state={job.state.value}")

    async def _insert_dependencies(self, conn: AsyncConnection, job: Job) -> None:
        if not job.dependencies:
            return

        edges = []
        for dependency in job.dependencies:
            if dependency.id is None:
                raise JobQueueLogicError(f"Dependency {dependency} of {job} must be persisted first.")
            edges.append((job.id, dependency.id))

        async with conn.cursor() as cur:
            await cur.executemany(
                sql.SQL("""
                INSERT INTO {} (source_job_id, dest_job_id) VALUES (%s, %s)
                ON CONFLICT DO NOTHING
                """).format(TABLE_DEPENDENCIES),
                edges,
            )

    async def delete(self, job: Job) -> None:
        async with self._connection() as conn:
            await conn.execute(
                sql.SQL("DELETE FROM {} WHERE id = %s").format(TABLE_JOBS),
                (job.id,),
            )
        logger.info(f"Deleted job {job.id}")

    async def acquire_lock(self, job_id: int, worker_name: str) -> int:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {} SET worker_name = %s
                WHERE id = %s AND worker_name IS NULL
                """).format(TABLE_JOBS),
                (worker_name, job_id),
            )
            return result.rowcount

    # =========================================================================
    # ROW-LEVEL READS
    # =========================================================================

    async def _fetch_jobs(self, ids: Iterable[int]) -> Dict[int, Job]:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE id = ANY(%s)").format(TABLE_JOBS),
                (list(ids),),
            )
            rows = await result.fetchall()
            return {row["id"]: self._row_to_job(row) for row in rows}

    async def _fetch_dependency_ids(self, ids: Sequence[int]) -> Dict[int, List[int]]:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT source_job_id, dest_job_id FROM {}
                WHERE source_job_id = ANY(%s)
                ORDER BY dest_job_id ASC
                """).format(TABLE_DEPENDENCIES),
                (list(ids),),
            )
            mapping: Dict[int, List[int]] = {}
            for row in await result.fetchall():
                mapping.setdefault(row["source_job_id"], []).append(row["dest_job_id"])
            return mapping

    async def _fetch_retry_job_ids(self, ids: Sequence[int]) -> Dict[int, List[int]]:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT id, original_job_id FROM {}
                WHERE original_job_id = ANY(%s)
                ORDER BY id ASC
                """).format(TABLE_JOBS),
                (list(ids),),
            )
            mapping: Dict[int, List[int]] = {}
            for row in await result.fetchall():
                mapping.setdefault(row["original_job_id"], []).append(row["id"])
            return mapping

    async def get_incoming_dependency_ids(self, job_id: int) -> List[int]:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT source_job_id FROM {}
                WHERE dest_job_id = %s
                ORDER BY source_job_id ASC
                """).format(TABLE_DEPENDENCIES),
                (job_id,),
            )
            return [row["source_job_id"] for row in await result.fetchall()]

    async def _find_pending_row(
        self,
        now: datetime,
        excluded_ids: Sequence[int],
        excluded_queues: Sequence[str],
        restricted_queues: Sequence[str],
    ) -> Optional[Job]:
        conditions = [
            sql.SQL("worker_name IS NULL"),
            sql.SQL("execute_after < %(now)s"),
            sql.SQL("state = %(state)s"),
        ]
        params: Dict[str, Any] = {"now": now, "state": JobState.PENDING.value}

        if excluded_ids:
            conditions.append(sql.SQL("id <> ALL(%(excluded_ids)s)"))
            params["excluded_ids"] = list(excluded_ids)

        if excluded_queues:
            conditions.append(sql.SQL("queue <> ALL(%(excluded_queues)s)"))
            params["excluded_queues"] = list(excluded_queues)

        if restricted_queues:
            conditions.append(sql.SQL("queue = ANY(%(restricted_queues)s)"))
            params["restricted_queues"] = list(restricted_queues)

        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {} WHERE {}
                ORDER BY sort_priority ASC, id ASC
                LIMIT 1
                """).format(TABLE_JOBS, sql.SQL(" AND ").join(conditions)),
                params,
            )
            row = await result.fetchone()
            return self._row_to_job(row) if row is not None else None

    async def _find_row_by_command(self, command: str, args: List[Any]) -> Optional[Job]:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {}
                WHERE command = %s AND args = %s
                ORDER BY id ASC
                LIMIT 1
                """).format(TABLE_JOBS),
                (command, Jsonb(args)),
            )
            row = await result.fetchone()
            return self._row_to_job(row) if row is not None else None

    async def _find_rows_with_error(self, limit: int) -> List[Job]:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {}
                WHERE state = ANY(%s) AND original_job_id IS NULL
                ORDER BY closed_at DESC NULLS LAST
                LIMIT %s
                """).format(TABLE_JOBS),
                (ERROR_STATES, limit),
            )
            return [self._row_to_job(row) for row in await result.fetchall()]

    async def get_available_queues(self) -> List[str]:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT DISTINCT queue FROM {}
                WHERE state = ANY(%s)
                ORDER BY queue
                """).format(TABLE_JOBS),
                ([s.value for s in AVAILABLE_STATES],),
            )
            return [row["queue"] for row in await result.fetchall()]

    async def count_available_jobs(self, queue: str) -> int:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT COUNT(*) AS count FROM {}
                WHERE state = ANY(%s) AND queue = %s
                """).format(TABLE_JOBS),
                ([s.value for s in AVAILABLE_STATES], queue),
            )
            row = await result.fetchone()
            return row["count"]

    # =========================================================================
    # RELATED ENTITIES
    # =========================================================================

    async def add_related_entity(self, job: Job, entity: Any) -> None:
        if job.id is None:
            raise JobQueueLogicError(f"{job} must be persisted before relating entities.")

        related_class, related_id = related_entity_identifier(entity)
        async with self._connection() as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (job_id, related_class, related_id)
                VALUES (%s, %s, %s)
                ON CONFLICT DO NOTHING
                """).format(TABLE_RELATED_ENTITIES),
                (job.id, related_class, related_id),
            )

    async def _find_rows_for_related_entity(
        self,
        entity: Any,
        command: Optional[str] = None,
        states: Sequence[JobState] = (),
    ) -> List[Job]:
        related_class, related_id = related_entity_identifier(entity)

        conditions = [sql.SQL("r.related_class = %(rel_class)s"), sql.SQL("r.related_id = %(rel_id)s")]
        params: Dict[str, Any] = {"rel_class": related_class, "rel_id": related_id}

        if command is not None:
            conditions.append(sql.SQL("j.command = %(command)s"))
            params["command"] = command

        if states:
            conditions.append(sql.SQL("j.state = ANY(%(states)s)"))
            params["states"] = [JobState(s).value for s in states]

        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT j.* FROM {} j
                INNER JOIN {} r ON r.job_id = j.id
                WHERE {}
                ORDER BY j.id ASC
                """).format(TABLE_JOBS, TABLE_RELATED_ENTITIES, sql.SQL(" AND ").join(conditions)),
                params,
            )
            return [self._row_to_job(row) for row in await result.fetchall()]

    def _row_to_job(self, row: Dict[str, Any]) -> Job:
        """Convert database row to Job model."""
        return Job.model_validate(dict(row))


__all__ = ["JobRepository", "JOB_COLUMNS"]
