"""Transaction reads, manual entry and per-category statistics."""

import logging
import math
import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fintrack.core.exceptions import NotFoundError
from fintrack.models.account import Account, Transaction
from fintrack.schemas.budget import Pagination
from fintrack.schemas.transaction import (
    CategoryStat,
    TransactionCreate,
    TransactionPage,
    TransactionResponse,
    TransactionStats,
    TransactionType,
    TransactionUpdate,
)
from fintrack.services.aggregates import round2, to_money, utcnow
from fintrack.services.categorization import (
    DEFAULT_MERCHANT_RULES,
    MerchantRules,
    normalize_merchant_name,
)

logger = logging.getLogger(__name__)


def _filters(
    user_id: uuid.UUID,
    account_id: uuid.UUID | None = None,
    category: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> list:
    filters = [Account.user_id == user_id]
    if account_id:
        filters.append(Transaction.account_id == account_id)
    if category:
        filters.append(Transaction.category == category)
    if start_date:
        filters.append(Transaction.posted_at >= start_date)
    if end_date:
        filters.append(Transaction.posted_at <= end_date)
    return filters


def _get_owned(db: Session, user_id: uuid.UUID, transaction_id: uuid.UUID) -> Transaction:
    txn = db.execute(
        select(Transaction)
        .join(Account, Transaction.account_id == Account.id)
        .where(Transaction.id == transaction_id, Account.user_id == user_id)
    ).scalar_one_or_none()
    if txn is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return txn


def list_transactions(
    db: Session,
    user_id: uuid.UUID,
    page: int = 1,
    limit: int = 50,
    account_id: uuid.UUID | None = None,
    category: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> TransactionPage:
    filters = _filters(user_id, account_id, category, start_date, end_date)
    total = db.execute(
        select(func.count(Transaction.id))
        .join(Account, Transaction.account_id == Account.id)
        .where(*filters)
    ).scalar() or 0
    rows = db.execute(
        select(Transaction)
        .join(Account, Transaction.account_id == Account.id)
        .where(*filters)
        .order_by(Transaction.posted_at.desc(), Transaction.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    return TransactionPage(
        transactions=[TransactionResponse.model_validate(t) for t in rows],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


def get_transaction(db: Session, user_id: uuid.UUID, transaction_id: uuid.UUID) -> TransactionResponse:
    return TransactionResponse.model_validate(_get_owned(db, user_id, transaction_id))


def create_manual_transaction(
    db: Session,
    user_id: uuid.UUID,
    payload: TransactionCreate,
    rules: MerchantRules = DEFAULT_MERCHANT_RULES,
) -> TransactionResponse:
    """Record a user-entered transaction on one of the user's accounts."""
    account = db.execute(
        select(Account).where(Account.id == payload.account_id, Account.user_id == user_id)
    ).scalar_one_or_none()
    if account is None:
        raise NotFoundError(f"Account {payload.account_id} not found")

    txn_type = payload.type or (
        TransactionType.credit if payload.amount > 0 else TransactionType.debit
    )
    txn = Transaction(
        account_id=account.id,
        posted_at=payload.posted_at,
        amount=payload.amount,
        type=TransactionType(txn_type).value,
        merchant=payload.merchant,
        normalized_name=payload.normalized_name or normalize_merchant_name(payload.merchant),
        category=payload.category or rules.categorize(payload.merchant),
        raw_category=payload.raw_category,
        notes=payload.notes,
        is_manual=True,
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)
    logger.info("Created manual transaction %s on account %s", txn.id, account.id)
    return TransactionResponse.model_validate(txn)


def update_transaction(
    db: Session, user_id: uuid.UUID, transaction_id: uuid.UUID, payload: TransactionUpdate
) -> TransactionResponse:
    txn = _get_owned(db, user_id, transaction_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(txn, field, value)
    txn.updated_at = utcnow()
    db.commit()
    db.refresh(txn)
    return TransactionResponse.model_validate(txn)


def delete_transaction(db: Session, user_id: uuid.UUID, transaction_id: uuid.UUID) -> None:
    txn = _get_owned(db, user_id, transaction_id)
    db.delete(txn)
    db.commit()
    logger.info("Deleted transaction %s for user %s", transaction_id, user_id)


def transaction_categories(db: Session, user_id: uuid.UUID) -> list[str]:
    return list(db.execute(
        select(Transaction.category)
        .join(Account, Transaction.account_id == Account.id)
        .where(Account.user_id == user_id, Transaction.category.is_not(None))
        .distinct()
        .order_by(Transaction.category)
    ).scalars().all())


def get_transaction_stats(
    db: Session,
    user_id: uuid.UUID,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> TransactionStats:
    """Debit/credit totals and per-category sums. Debits are reported as absolute values."""
    filters = _filters(user_id, start_date=start_date, end_date=end_date)

    by_type = dict(db.execute(
        select(Transaction.type, func.sum(Transaction.amount))
        .join(Account, Transaction.account_id == Account.id)
        .where(*filters)
        .group_by(Transaction.type)
    ).all())
    total = db.execute(
        select(func.count(Transaction.id))
        .join(Account, Transaction.account_id == Account.id)
        .where(*filters)
    ).scalar() or 0

    category_rows = db.execute(
        select(Transaction.category, func.sum(Transaction.amount), func.count(Transaction.id))
        .join(Account, Transaction.account_id == Account.id)
        .where(*filters, Transaction.category.is_not(None))
        .group_by(Transaction.category)
        .order_by(Transaction.category)
    ).all()

    debits = abs(to_money(by_type.get("debit")))
    credits = to_money(by_type.get("credit"))
    return TransactionStats(
        total_transactions=total,
        total_debits=debits,
        total_credits=credits,
        net_amount=round2(credits - debits),
        category_stats=[
            CategoryStat(category=category, total_amount=to_money(amount), transaction_count=count)
            for category, amount, count in category_rows
        ],
    )

