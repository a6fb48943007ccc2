"""
Postgres implementation of the job store.

Job records live in a single ``video_jobs`` table; parameters and
metadata are JSONB columns. Status updates are compare-and-set so a
cancellation written by another process is never overwritten.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any, List, Set

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from .base import JobStore
from ..fsm import TERMINAL_STATES
from ..logging_setup import log_exception
from ..models import VideoJob, JobParams, JobStatus

logger = logging.getLogger("reel_worker")

_MUTABLE_COLUMNS = (
    'status', 'progress', 'error_message', 'generated_script', 'audio_url',
    'background_url', 'final_video_url', 'metadata', 'completed_at'
)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS video_jobs (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        params JSONB NOT NULL,
        status TEXT NOT NULL,
        progress INTEGER NOT NULL DEFAULT 0,
        error_message TEXT,
        generated_script TEXT,
        audio_url TEXT,
        background_url TEXT,
        final_video_url TEXT,
        metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        completed_at TIMESTAMPTZ
    );
    CREATE INDEX IF NOT EXISTS video_jobs_owner_created_idx
        ON video_jobs (owner_id, created_at DESC);
    CREATE INDEX IF NOT EXISTS video_jobs_status_created_idx
        ON video_jobs (status, created_at);
"""


def _row_to_job(row: Dict[str, Any]) -> VideoJob:
    return VideoJob(
        id=row['id'],
        owner_id=row['owner_id'],
        params=JobParams.model_validate(row['params']),
        status=JobStatus(row['status']),
        progress=row['progress'] or 0,
        error_message=row['error_message'],
        generated_script=row['generated_script'],
        audio_url=row['audio_url'],
        background_url=row['background_url'],
        final_video_url=row['final_video_url'],
        metadata=row['metadata'] or {},
        created_at=row['created_at'],
        updated_at=row['updated_at'],
        completed_at=row['completed_at']
    )


class PostgresJobStore(JobStore):
    """Postgres implementation of the job store"""

    def __init__(self, database_url: str, pool_size: int = 5, timeout: int = 10):
        self.database_url = database_url
        self.pool_size = pool_size
        self.timeout = timeout
        self.pool = None

    def connect(self):
        """Initialize connection pool"""
        try:
            self.pool = ConnectionPool(
                self.database_url,
                min_size=1,
                max_size=self.pool_size,
                kwargs={
                    "connect_timeout": self.timeout,
                    "application_name": "reel_worker"
                }
            )
            logger.info("Postgres job store connection pool initialized")
            self._bootstrap_schema()
        except Exception as e:
            log_exception(logger, f"Failed to connect to Postgres job store: {e}")
            raise

    def _bootstrap_schema(self):
        """Create the jobs table and indexes if missing"""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(_SCHEMA)
                conn.commit()
                logger.info("Postgres job store schema validated")

    def create(self, job: VideoJob) -> None:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO video_jobs (
                        id, owner_id, params, status, progress, metadata,
                        created_at, updated_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """, (
                    job.id, job.owner_id, Jsonb(job.params.model_dump(mode="json")),
                    job.status.value, job.progress, Jsonb(job.metadata),
                    job.created_at, job.updated_at
                ))
                conn.commit()
                logger.debug(f"Created job {job.id} for owner {job.owner_id}")

    def get(self, job_id: str) -> Optional[VideoJob]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM video_jobs WHERE id = %s", (job_id,))
                row = cur.fetchone()
                return _row_to_job(row) if row else None

    def list_by_owner(self, owner_id: str, limit: int = 20) -> List[VideoJob]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("""
                    SELECT * FROM video_jobs
                    WHERE owner_id = %s
                    ORDER BY created_at DESC
                    LIMIT %s
                """, (owner_id, limit))
                return [_row_to_job(row) for row in cur.fetchall()]

    def update(self, job_id: str, changes: Dict[str, Any],
               allowed_from: Optional[Set[JobStatus]] = None) -> Optional[VideoJob]:
        unknown = set(changes) - set(_MUTABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        assignments = []
        params: List[Any] = []
        for name, value in changes.items():
            column = sql.Identifier(name)
            if name == 'metadata':
                assignments.append(sql.SQL("{} = {} || %s").format(column, column))
                params.append(Jsonb(value or {}))
            elif name == 'progress':
                assignments.append(sql.SQL("{} = GREATEST({}, %s)").format(column, column))
                params.append(int(value))
            elif name == 'status':
                assignments.append(sql.SQL("{} = %s").format(column))
                params.append(JobStatus(value).value)
            else:
                assignments.append(sql.SQL("{} = %s").format(column))
                params.append(value)
        assignments.append(sql.SQL("updated_at = now()"))

        query = sql.SQL("UPDATE video_jobs SET {} WHERE id = %s").format(
            sql.SQL(", ").join(assignments)
        )
        params.append(job_id)
        if allowed_from is not None:
            query = query + sql.SQL(" AND status = ANY(%s)")
            params.append([status.value for status in allowed_from])
        query = query + sql.SQL(" RETURNING *")

        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
                conn.commit()
                return _row_to_job(row) if row else None

    def delete(self, job_id: str) -> bool:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM video_jobs WHERE id = %s", (job_id,))
                deleted = cur.rowcount
                conn.commit()
                return deleted > 0

    def delete_terminal_before(self, cutoff: datetime) -> int:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    DELETE FROM video_jobs
                    WHERE status = ANY(%s) AND created_at < %s
                """, ([status.value for status in TERMINAL_STATES], cutoff))
                deleted = cur.rowcount
                conn.commit()
                logger.info(f"Deleted {deleted} jobs created before {cutoff.isoformat()}")
                return deleted

    def count_by_status(self, owner_id: str, since: Optional[datetime] = None) -> Dict[str, int]:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                if since is None:
                    cur.execute("""
                        SELECT status, COUNT(*) FROM video_jobs
                        WHERE owner_id = %s
                        GROUP BY status
                    """, (owner_id,))
                else:
                    cur.execute("""
                        SELECT status, COUNT(*) FROM video_jobs
                        WHERE owner_id = %s AND created_at >= %s
                        GROUP BY status
                    """, (owner_id, since))
                return {row[0]: row[1] for row in cur.fetchall()}

    def list_due(self, now: datetime, limit: int = 50) -> List[VideoJob]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("""
                    SELECT * FROM video_jobs
                    WHERE status = %s
                      AND (params->>'scheduled_for')::timestamptz <= %s
                    ORDER BY (params->>'scheduled_for')::timestamptz
                    LIMIT %s
                """, (JobStatus.PENDING.value, now, limit))
                return [_row_to_job(row) for row in cur.fetchall()]

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.close()
            logger.info("Postgres job store connection pool closed")
