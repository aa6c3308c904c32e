"""
Sync job bookkeeping.

Celery owns delivery and backoff; this registry owns what the rest of the
application can ask about a job: its state, result, last error and retry count.
It is also the worker's observer: every state transition the worker goes through
(waiting → active → completed | failed, with retries looping back to waiting)
is written here as one UPDATE.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, sessionmaker

from fintrack.core.config import settings
from fintrack.core.database import SessionLocal
from fintrack.models.sync_job import SyncJob
from fintrack.schemas.sync import JobState, QueueStats, SyncJobData, SyncJobResult

logger = logging.getLogger(__name__)


class SyncJobObserver(Protocol):
    def on_active(self, job: SyncJobData) -> bool:
        """Job picked up by a worker. Return False if it no longer exists (cancelled)."""
        ...

    def on_retry(self, job: SyncJobData, error: Exception) -> None: ...

    def on_completed(self, job: SyncJobData, result: SyncJobResult) -> None: ...

    def on_failed(self, job: SyncJobData, error: Exception) -> None: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SyncJobRegistry:
    """Database-backed job records; implements SyncJobObserver."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] = SessionLocal,
        keep_completed: int = settings.sync_keep_completed,
        keep_failed: int = settings.sync_keep_failed,
    ):
        self._session_factory = session_factory
        self.keep_completed = keep_completed
        self.keep_failed = keep_failed

    # ── Writes from the producer side ────────────────────────────────────────

    def register(self, jobs: list[SyncJobData]) -> None:
        """Insert waiting records for a batch in a single transaction (all or nothing)."""
        created = _now()
        with self._session_factory() as db, db.begin():
            db.add_all([
                SyncJob(
                    id=job.job_id,
                    account_id=job.account_id,
                    user_id=job.user_id,
                    retry_count=job.retry_count,
                    state=JobState.waiting.value,
                    created_at=created,
                )
                for job in jobs
            ])

    def remove(self, job_ids: list[str]) -> int:
        if not job_ids:
            return 0
        with self._session_factory() as db, db.begin():
            result = db.execute(delete(SyncJob).where(SyncJob.id.in_(job_ids)))
        return result.rowcount

    def remove_inactive(self, job_id: str) -> bool:
        """Delete a job record unless a worker has already marked it active."""
        with self._session_factory() as db, db.begin():
            result = db.execute(
                delete(SyncJob).where(SyncJob.id == job_id, SyncJob.state != JobState.active.value)
            )
        return result.rowcount > 0

    # ── Observer (worker side) ───────────────────────────────────────────────

    def on_active(self, job: SyncJobData) -> bool:
        with self._session_factory() as db, db.begin():
            result = db.execute(
                update(SyncJob)
                .where(SyncJob.id == job.job_id)
                .values(state=JobState.active.value, started_at=_now(), retry_count=job.retry_count)
            )
        return result.rowcount > 0

    def on_retry(self, job: SyncJobData, error: Exception) -> None:
        with self._session_factory() as db, db.begin():
            db.execute(
                update(SyncJob)
                .where(SyncJob.id == job.job_id)
                .values(
                    state=JobState.waiting.value,
                    retry_count=job.retry_count + 1,
                    error=str(error),
                )
            )
        logger.info("Sync job %s scheduled for retry %d: %s", job.job_id, job.retry_count + 1, error)

    def on_completed(self, job: SyncJobData, result: SyncJobResult) -> None:
        with self._session_factory() as db, db.begin():
            db.execute(
                update(SyncJob)
                .where(SyncJob.id == job.job_id)
                .values(
                    state=JobState.completed.value,
                    result=result.model_dump(mode="json"),
                    error=result.error,
                    finished_at=_now(),
                )
            )
        logger.info("Sync job %s completed for account %s", job.job_id, job.account_id)
        self.trim(JobState.completed, self.keep_completed)

    def on_failed(self, job: SyncJobData, error: Exception) -> None:
        with self._session_factory() as db, db.begin():
            db.execute(
                update(SyncJob)
                .where(SyncJob.id == job.job_id)
                .values(state=JobState.failed.value, error=str(error), finished_at=_now())
            )
        logger.error("Sync job %s failed for account %s: %s", job.job_id, job.account_id, error)
        self.trim(JobState.failed, self.keep_failed)

    # ── Reads & housekeeping ─────────────────────────────────────────────────

    def get(self, job_id: str) -> SyncJob | None:
        with self._session_factory() as db:
            return db.get(SyncJob, job_id)

    def list_jobs(
        self, user_id: uuid.UUID | None = None, state: JobState | None = None, limit: int = 10
    ) -> list[SyncJob]:
        stmt = select(SyncJob).order_by(SyncJob.created_at.desc(), SyncJob.id.desc()).limit(limit)
        if user_id is not None:
            stmt = stmt.where(SyncJob.user_id == user_id)
        if state is not None:
            stmt = stmt.where(SyncJob.state == JobState(state).value)
        with self._session_factory() as db:
            return list(db.execute(stmt).scalars().all())

    def stats(self) -> QueueStats:
        with self._session_factory() as db:
            rows = db.execute(
                select(SyncJob.state, func.count(SyncJob.id)).group_by(SyncJob.state)
            ).all()
        counts = {state: count for state, count in rows}
        stats = QueueStats(**{s.value: counts.get(s.value, 0) for s in JobState})
        stats.total = stats.waiting + stats.active + stats.completed + stats.failed
        return stats

    def trim(self, state: JobState, keep: int) -> int:
        """Delete finished jobs in `state` beyond the `keep` most recent. Returns rows removed."""
        with self._session_factory() as db, db.begin():
            stale_ids = db.execute(
                select(SyncJob.id)
                .where(SyncJob.state == state.value)
                .order_by(SyncJob.finished_at.desc(), SyncJob.id.desc())
                .offset(keep)
            ).scalars().all()
            if not stale_ids:
                return 0
            db.execute(delete(SyncJob).where(SyncJob.id.in_(stale_ids)))
        logger.debug("Trimmed %d %s sync jobs", len(stale_ids), state.value)
        return len(stale_ids)
