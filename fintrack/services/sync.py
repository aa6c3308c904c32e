"""Transaction sync service: idempotent per-account sync driven by Celery.

One job syncs one account:

    waiting ─► active ─► completed            (success, or a terminal error)
                  │
                  └─► waiting (retry n+1) ─► … ─► failed   (retries exhausted)

Retryable errors propagate to the Celery task, which reschedules it with an
exponential countdown. Terminal errors (bad token, unknown account) complete the
job with success=False so they never count as queue failures.
"""

import logging
import uuid
from datetime import datetime, time, timezone

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from fintrack.clients.protocols import AggregatorClient
from fintrack.core.config import settings
from fintrack.core.database import SessionLocal
from fintrack.core.exceptions import AggregatorError
from fintrack.models.account import Account, Transaction
from fintrack.schemas.sync import RawTransaction, SyncJobData, SyncJobResult
from fintrack.services.aggregates import utcnow
from fintrack.services.categorization import (
    DEFAULT_CATEGORIZER,
    Categorizer,
    normalize_transaction_name,
)
from fintrack.services.job_registry import SyncJobObserver, SyncJobRegistry
from fintrack.worker import celery_app

logger = logging.getLogger(__name__)


# ─── Retry classification ───────────────────────────────────────────────────────

TERMINAL_ERRORS = ("account not found", "invalid public token", "invalid access token")
TRANSIENT_ERRORS = ("network", "timeout", "rate limit", "temporary")


def should_retry(error, retry_count: int, max_retries: int = settings.sync_max_attempts) -> bool:
    """Decide whether a failed sync is worth another attempt.

    `error` may be an exception or a message; matching is case-insensitive.
    Unrecognised errors are retried until `retry_count` reaches `max_retries`.
    """
    if retry_count >= max_retries:
        return False

    message = str(error).lower()
    if any(marker in message for marker in TERMINAL_ERRORS):
        return False
    if any(marker in message for marker in TRANSIENT_ERRORS):
        return True
    return True


# ─── Upsert ─────────────────────────────────────────────────────────────────────

# Columns the aggregator owns; category and notes may have been edited by the user
_REFRESHED_COLUMNS = ("posted_at", "amount", "type", "merchant", "normalized_name", "raw_category")


def _dialect_insert(db: Session):
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


class SyncTransactionsProcessor:
    """Runs one sync job against an aggregator client and reports to an observer."""

    def __init__(
        self,
        client: AggregatorClient,
        session_factory: sessionmaker[Session] = SessionLocal,
        categorizer: Categorizer = DEFAULT_CATEGORIZER,
        observer: SyncJobObserver | None = None,
        max_attempts: int = settings.sync_max_attempts,
    ):
        self.client = client
        self._session_factory = session_factory
        self.categorizer = categorizer
        self.observer = observer or SyncJobRegistry(session_factory)
        self.max_attempts = max_attempts

    def _to_row(self, account_id: uuid.UUID, raw: RawTransaction) -> dict:
        return {
            "account_id": account_id,
            "source_transaction_id": raw.transaction_id,
            "posted_at": datetime.combine(raw.date, time.min, tzinfo=timezone.utc),
            "amount": raw.amount,
            "type": "credit" if raw.amount > 0 else "debit",
            "merchant": raw.merchant_name or raw.name,
            "normalized_name": normalize_transaction_name(raw.name),
            "category": self.categorizer.categorize(raw.category, raw.merchant_name or raw.name),
            "raw_category": raw.category[0] if raw.category else "uncategorized",
            "notes": raw.name,
            "is_manual": False,
        }

    def sync_account(self, account_id: uuid.UUID) -> tuple[int, int]:
        """Fetch and upsert the account's transactions. Returns (synced, newly inserted)."""
        response = self.client.sync_transactions(str(account_id))
        if not response.success:
            raise AggregatorError(response.error or "Aggregator sync failed")

        rows = [self._to_row(account_id, raw) for raw in response.transactions]
        source_ids = {row["source_transaction_id"] for row in rows}
        now = utcnow()

        with self._session_factory() as db, db.begin():
            existing: set[str] = set()
            if source_ids:
                existing = set(db.execute(
                    select(Transaction.source_transaction_id).where(
                        Transaction.account_id == account_id,
                        Transaction.source_transaction_id.in_(sorted(source_ids)),
                    )
                ).scalars())

            insert = _dialect_insert(db)
            for row in rows:
                stmt = insert(Transaction).values(**row)
                refreshed = {col: stmt.excluded[col] for col in _REFRESHED_COLUMNS}
                refreshed["updated_at"] = now
                db.execute(stmt.on_conflict_do_update(
                    index_elements=["account_id", "source_transaction_id"],
                    set_=refreshed,
                ))

            db.execute(
                update(Account).where(Account.id == account_id).values(last_synced_at=now)
            )

        return len(rows), len(source_ids - existing)

    def process(self, job: SyncJobData) -> SyncJobResult | None:
        """Run one attempt of a job. Re-raises retryable errors; returns None if cancelled."""
        if not self.observer.on_active(job):
            logger.info("Sync job %s no longer exists; skipping", job.job_id)
            return None

        logger.info(
            "Syncing account %s (job %s, attempt %d/%d)",
            job.account_id, job.job_id, job.retry_count + 1, self.max_attempts,
        )
        try:
            synced, new = self.sync_account(job.account_id)
        except Exception as exc:
            if should_retry(exc, job.retry_count, self.max_attempts):
                if job.retry_count + 1 >= self.max_attempts:
                    self.observer.on_failed(job, exc)
                else:
                    self.observer.on_retry(job, exc)
                raise

            logger.warning("Sync job %s hit a terminal error: %s", job.job_id, exc)
            result = SyncJobResult(
                success=False,
                account_id=job.account_id,
                user_id=job.user_id,
                error=str(exc),
                processed_at=utcnow(),
            )
            self.observer.on_completed(job, result)
            return result

        result = SyncJobResult(
            success=True,
            account_id=job.account_id,
            user_id=job.user_id,
            transaction_count=synced,
            new_transaction_count=new,
            processed_at=utcnow(),
        )
        logger.info(
            "Synced %d transactions (%d new) for account %s",
            synced, new, job.account_id,
        )
        self.observer.on_completed(job, result)
        return result


_processor: SyncTransactionsProcessor | None = None


def get_processor() -> SyncTransactionsProcessor:
    """Worker-wide processor, built on first use so importing this module stays cheap."""
    global _processor
    if _processor is None:
        from fintrack.clients.plaid_client import PlaidAggregatorClient

        _processor = SyncTransactionsProcessor(PlaidAggregatorClient())
    return _processor


# ─── Celery tasks ───────────────────────────────────────────────────────────────

@celery_app.task(
    bind=True,
    name="fintrack.services.sync.sync_transactions",
    max_retries=settings.sync_max_attempts - 1,
)
def sync_transactions(self, job_id: str, account_id: str, user_id: str):
    """Sync one account. The Celery task id is the job id."""
    job = SyncJobData(
        job_id=job_id,
        account_id=account_id,
        user_id=user_id,
        retry_count=self.request.retries,
    )
    try:
        result = get_processor().process(job)
    except Exception as exc:
        if self.request.retries >= self.max_retries:
            raise
        countdown = settings.sync_backoff_base_seconds * 2 ** self.request.retries
        raise self.retry(exc=exc, countdown=countdown)
    return result.model_dump(mode="json") if result else None


@celery_app.task(name="fintrack.services.sync.sync_all_accounts")
def sync_all_accounts():
    """Enqueue a bulk sync per user for every Plaid-linked account."""
    from fintrack.services.job_queue import SyncJobQueue

    logger.info("Starting scheduled transaction sync for all linked accounts")
    with SessionLocal() as db:
        rows = db.execute(
            select(Account.user_id, Account.id)
            .where(Account.plaid_item_id.is_not(None))
            .order_by(Account.user_id)
        ).all()

    by_user: dict[uuid.UUID, list[uuid.UUID]] = {}
    for user_id, account_id in rows:
        by_user.setdefault(user_id, []).append(account_id)

    queue = SyncJobQueue()
    queued = 0
    for user_id, account_ids in by_user.items():
        try:
            queued += len(queue.enqueue_sync_bulk(account_ids, user_id))
        except Exception:
            logger.exception("Failed to enqueue scheduled sync for user %s", user_id)

    logger.info("Scheduled sync queued %d jobs for %d users", queued, len(by_user))
    return {"jobs": queued, "users": len(by_user)}
