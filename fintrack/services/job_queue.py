"""Producer-side API for the transaction sync queue.

Jobs are Celery tasks on the `sync-transactions` queue whose task id is the job
key `sync-<account_id>-<epoch ms>`. A matching row in `sync_jobs` carries the state
the worker reports, which is what get/list/stats/cancel read.
"""

import logging
import threading
import time
import uuid

from fintrack.core.config import settings
from fintrack.schemas.sync import JobHandle, JobState, QueueStats, SyncJobData
from fintrack.services.job_registry import SyncJobRegistry
from fintrack.services.sync import sync_transactions
from fintrack.worker import celery_app

logger = logging.getLogger(__name__)

_stamp_lock = threading.Lock()
_last_stamp = 0


def _next_stamp() -> int:
    """Epoch milliseconds, bumped so it strictly increases within this process."""
    global _last_stamp
    with _stamp_lock:
        stamp = max(int(time.time() * 1000), _last_stamp + 1)
        _last_stamp = stamp
        return stamp


def make_job_id(account_id) -> str:
    return f"sync-{account_id}-{_next_stamp()}"


class SyncJobQueue:
    def __init__(self, registry: SyncJobRegistry | None = None, app=celery_app):
        self.registry = registry or SyncJobRegistry()
        self.app = app
        self.queue_name = settings.sync_queue_name

    # ─── Enqueue ───────────────────────────────────────────────────────────────

    def _publish(self, job: SyncJobData, producer=None) -> None:
        sync_transactions.apply_async(
            args=(job.job_id, str(job.account_id), str(job.user_id)),
            task_id=job.job_id,
            queue=self.queue_name,
            producer=producer,
        )

    def enqueue_sync(self, account_id: uuid.UUID, user_id: uuid.UUID) -> JobHandle:
        return self.enqueue_sync_bulk([account_id], user_id)[0]

    def enqueue_sync_bulk(self, account_ids: list[uuid.UUID], user_id: uuid.UUID) -> list[JobHandle]:
        """Queue one job per account: all of them or, on error, none."""
        jobs = [
            SyncJobData(job_id=make_job_id(account_id), account_id=account_id, user_id=user_id)
            for account_id in account_ids
        ]
        if not jobs:
            return []

        self.registry.register(jobs)

        published: list[str] = []
        try:
            with self.app.producer_or_acquire() as producer:
                for job in jobs:
                    self._publish(job, producer=producer)
                    published.append(job.job_id)
        except Exception:
            logger.exception(
                "Publishing sync batch failed after %d of %d jobs; rolling back",
                len(published), len(jobs),
            )
            for job_id in published:
                self.app.control.revoke(job_id)
            self.registry.remove([job.job_id for job in jobs])
            raise

        logger.info("Queued %d sync jobs for user %s", len(jobs), user_id)
        return [
            JobHandle(job_id=job.job_id, account_id=job.account_id, user_id=job.user_id)
            for job in jobs
        ]

    # ─── Introspection ─────────────────────────────────────────────────────────

    def get_job(self, job_id: str):
        return self.registry.get(job_id)

    def list_jobs(self, user_id: uuid.UUID | None = None, state: JobState | None = None, limit: int = 10):
        return self.registry.list_jobs(user_id=user_id, state=state, limit=limit)

    def get_stats(self) -> QueueStats:
        return self.registry.stats()

    # ─── Control ───────────────────────────────────────────────────────────────

    def cancel(self, job_id: str) -> bool:
        """Remove a job that is not currently running. Returns False for active or unknown jobs."""
        if not self.registry.remove_inactive(job_id):
            logger.info("Sync job %s is active or unknown and cannot be cancelled", job_id)
            return False

        self.app.control.revoke(job_id)
        logger.info("Cancelled sync job %s", job_id)
        return True

    def clear_completed(
        self,
        keep_completed: int = settings.sync_keep_completed,
        keep_failed: int = settings.sync_keep_failed,
    ) -> int:
        removed = self.registry.trim(JobState.completed, keep_completed)
        removed += self.registry.trim(JobState.failed, keep_failed)
        logger.info("Cleared %d finished sync jobs", removed)
        return removed

    def pause(self) -> None:
        """Stop workers consuming the sync queue; queued jobs stay in the broker."""
        self.app.control.cancel_consumer(self.queue_name)
        logger.info("Paused sync queue %s", self.queue_name)

    def resume(self) -> None:
        self.app.control.add_consumer(self.queue_name)
        logger.info("Resumed sync queue %s", self.queue_name)
