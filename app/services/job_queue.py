"""
Analysis Job Queue
==================

PURPOSE:
    Durable work queue for video analysis, backed by the ``analysis_jobs``
    table. At-least-once: a claimed job that crashes mid-processing stays in
    ``processing`` until an operator intervenes; nothing is retried
    automatically.

STATE MACHINE:
    pending → processing (claimed by exactly one dequeue, started_at set)
    processing → completed (result_text, completed_at)
    processing → failed (error_message, completed_at, retry_count += 1)
    failed → pending (explicit retry: error/started/completed cleared)

CLAIM:
    A single UPDATE whose WHERE clause selects the oldest pending id with
    FOR UPDATE SKIP LOCKED. Concurrent pollers skip rows another transaction
    has locked instead of waiting on them, and the outer ``status='pending'``
    guard makes a lost race affect zero rows. On SQLite the locking clause
    compiles away and the statement's write lock serialises claimants.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

import sqlalchemy as sa
from sqlalchemy.engine import Engine

from app.core.database import sqlite_retry
from app.models.job import AnalysisJob, JobStatus, NewJob

logger = logging.getLogger(__name__)

jobs_table: sa.Table = AnalysisJob.__table__


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_job(row) -> AnalysisJob:
    return AnalysisJob(**dict(row._mapping))


class JobQueue:
    """
    Persistent analysis queue via SQLAlchemy Core.

    Each public method acquires its own connection (per-operation isolation)
    and runs exactly one statement, so every transition is atomic. Methods
    are synchronous; async callers go through app.core.async_utils.run_sync.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def enqueue(self, job: NewJob) -> str:
        """Insert a pending job and return its id."""
        row = AnalysisJob(
            user_id=job.user_id,
            ticket_id=job.ticket_id,
            artifact_path=job.artifact_path,
            artifact_size_bytes=job.artifact_size_bytes,
            prompt=job.prompt,
        )
        values = row.model_dump()

        def _insert():
            with self._engine.begin() as conn:
                conn.execute(jobs_table.insert().values(**values))

        sqlite_retry(_insert)
        logger.info(
            "job_enqueued",
            extra={"job_id": row.id, "ticket_id": job.ticket_id, "size_bytes": job.artifact_size_bytes},
        )
        return row.id

    # ------------------------------------------------------------------
    # Claim
    # ------------------------------------------------------------------

    def dequeue(self) -> Optional[AnalysisJob]:
        """Atomically claim the oldest pending job, or return None."""
        t = jobs_table
        now = _now()
        oldest_pending = (
            sa.select(t.c.id)
            .where(t.c.status == JobStatus.PENDING.value)
            .order_by(t.c.created_at.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            sa.update(t)
            .where(t.c.id == oldest_pending)
            .where(t.c.status == JobStatus.PENDING.value)
            .values(status=JobStatus.PROCESSING.value, started_at=now, updated_at=now)
            .returning(*t.c)
        )

        def _claim():
            with self._engine.begin() as conn:
                return conn.execute(stmt).first()

        row = sqlite_retry(_claim)
        if row is None:
            return None
        job = _to_job(row)
        logger.info("job_claimed", extra={"job_id": job.id, "ticket_id": job.ticket_id})
        return job

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def complete(self, job_id: str, result_text: str) -> None:
        now = _now()
        self._update(
            job_id,
            status=JobStatus.COMPLETED.value,
            result_text=result_text,
            completed_at=now,
            updated_at=now,
        )
        logger.info("job_completed", extra={"job_id": job_id, "result_chars": len(result_text)})

    def fail(self, job_id: str, error: str) -> None:
        t = jobs_table
        now = _now()
        self._update(
            job_id,
            status=JobStatus.FAILED.value,
            error_message=error,
            completed_at=now,
            updated_at=now,
            retry_count=t.c.retry_count + 1,
        )
        logger.warning("job_failed", extra={"job_id": job_id, "error": error})

    def retry(self, job_id: str) -> bool:
        """Reset a failed job to pending. Returns False if it was not failed."""
        t = jobs_table
        stmt = (
            sa.update(t)
            .where(t.c.id == job_id)
            .where(t.c.status == JobStatus.FAILED.value)
            .values(
                status=JobStatus.PENDING.value,
                error_message=None,
                started_at=None,
                completed_at=None,
                updated_at=_now(),
            )
        )

        def _reset():
            with self._engine.begin() as conn:
                return conn.execute(stmt).rowcount

        reset = sqlite_retry(_reset) == 1
        if reset:
            logger.info("job_retried", extra={"job_id": job_id})
        return reset

    def _update(self, job_id: str, **values) -> None:
        stmt = sa.update(jobs_table).where(jobs_table.c.id == job_id).values(**values)

        def _run():
            with self._engine.begin() as conn:
                conn.execute(stmt)

        sqlite_retry(_run)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, job_id: str) -> Optional[AnalysisJob]:
        with self._engine.connect() as conn:
            row = conn.execute(sa.select(jobs_table).where(jobs_table.c.id == job_id)).first()
        return _to_job(row) if row else None

    def get_for_ticket(self, ticket_id: str) -> Optional[AnalysisJob]:
        """Most recent job for a ticket."""
        t = jobs_table
        stmt = (
            sa.select(t)
            .where(t.c.ticket_id == ticket_id)
            .order_by(t.c.created_at.desc())
            .limit(1)
        )
        with self._engine.connect() as conn:
            row = conn.execute(stmt).first()
        return _to_job(row) if row else None

    def counts_by_status(self) -> Dict[str, int]:
        t = jobs_table
        stmt = sa.select(t.c.status, sa.func.count()).group_by(t.c.status)
        with self._engine.connect() as conn:
            counts = {status: count for status, count in conn.execute(stmt)}
        return {s.value: counts.get(s.value, 0) for s in JobStatus}
