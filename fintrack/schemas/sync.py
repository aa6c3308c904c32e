import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class JobState(str, enum.Enum):
    waiting = "waiting"
    active = "active"
    completed = "completed"
    failed = "failed"


# ─── Aggregator payloads ───────────────────────────────────────────────────

class RawTransaction(BaseModel):
    """One transaction as returned by the bank aggregator."""
    transaction_id: str
    date: date
    amount: Decimal
    name: str
    merchant_name: str | None = None
    category: list[str] | None = None


class AggregatorSyncResult(BaseModel):
    success: bool
    transactions: list[RawTransaction] = Field(default_factory=list)
    error: str | None = None


# ─── Queue payloads ────────────────────────────────────────────────────────

class SyncJobData(BaseModel):
    job_id: str
    account_id: uuid.UUID
    user_id: uuid.UUID
    retry_count: int = 0


class SyncJobResult(BaseModel):
    success: bool
    account_id: uuid.UUID
    user_id: uuid.UUID
    transaction_count: int = 0
    new_transaction_count: int = 0
    error: str | None = None
    processed_at: datetime


class JobHandle(BaseModel):
    job_id: str
    status: JobState = JobState.waiting
    account_id: uuid.UUID
    user_id: uuid.UUID


class SyncJobResponse(BaseModel):
    job_id: str = Field(validation_alias="id")
    account_id: uuid.UUID
    user_id: uuid.UUID
    state: JobState
    retry_count: int
    result: dict[str, Any] | None
    error: str | None
    created_at: datetime
    started_at: datetime | None
    finished_at: datetime | None

    model_config = {"from_attributes": True, "populate_by_name": True}


class QueueStats(BaseModel):
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0
