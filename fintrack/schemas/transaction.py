import enum
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from fintrack.schemas.budget import Pagination


class TransactionType(str, enum.Enum):
    debit = "debit"
    credit = "credit"


class TransactionCreate(BaseModel):
    account_id: uuid.UUID
    posted_at: datetime
    amount: Decimal = Field(decimal_places=2)
    type: TransactionType | None = None  # derived from the sign of amount when omitted
    merchant: str | None = None
    normalized_name: str | None = None
    raw_category: str | None = None
    category: str | None = None
    notes: str | None = None


class TransactionUpdate(BaseModel):
    category: str | None = None
    notes: str | None = None


class TransactionResponse(BaseModel):
    id: uuid.UUID
    account_id: uuid.UUID
    source_transaction_id: str | None
    posted_at: datetime
    amount: Decimal
    type: str
    merchant: str | None
    normalized_name: str | None
    category: str | None
    raw_category: str | None
    notes: str | None
    is_manual: bool

    model_config = {"from_attributes": True}


class TransactionPage(BaseModel):
    transactions: list[TransactionResponse]
    pagination: Pagination


class CategoryStat(BaseModel):
    category: str
    total_amount: Decimal
    transaction_count: int


class TransactionStats(BaseModel):
    total_transactions: int
    total_debits: Decimal    # absolute value of all debits
    total_credits: Decimal
    net_amount: Decimal      # total_credits - total_debits
    category_stats: list[CategoryStat]
