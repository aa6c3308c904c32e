import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from fintrack.core.database import Base


class SyncJob(Base):
    """Introspection record for one queued transaction sync.

    Delivery and backoff live in the Celery broker; this row tracks the state
    the worker reports so the queue can be counted, listed, trimmed and cancelled.
    """
    __tablename__ = "sync_jobs"

    id: Mapped[str] = mapped_column(String(120), primary_key=True)   # sync-<account>-<ms>
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    state: Mapped[str] = mapped_column(String(20), default="waiting", index=True)
    result: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    error: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
