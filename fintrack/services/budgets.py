"""Monthly category budgets with spending recomputed from transactions on every read.

The `spent_amount` column on a budget row is never trusted for reporting.
"""

import logging
import math
import uuid
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fintrack.core.exceptions import ConflictError, NotFoundError
from fintrack.models.account import Account, Transaction
from fintrack.models.budget import Budget
from fintrack.schemas.budget import (
    BudgetCreate,
    BudgetPage,
    BudgetStats,
    BudgetSummary,
    BudgetUpdate,
    BudgetWithSpentResponse,
    Pagination,
)
from fintrack.services.aggregates import ZERO, month_bounds, percentage, round2, to_money

logger = logging.getLogger(__name__)


# ─── Spent computation ──────────────────────────────────────────────────────────

def compute_spent(db: Session, user_id: uuid.UUID, month: str, category: str) -> Decimal:
    """Absolute sum of the user's debits in `category` posted during `month`."""
    start, end = month_bounds(month)
    total = db.execute(
        select(func.coalesce(func.sum(func.abs(Transaction.amount)), 0))
        .join(Account, Transaction.account_id == Account.id)
        .where(
            Account.user_id == user_id,
            Transaction.type == "debit",
            Transaction.category == category,
            Transaction.posted_at >= start,
            Transaction.posted_at <= end,
        )
    ).scalar()
    return to_money(total)


def enrich_budget(db: Session, budget: Budget) -> BudgetWithSpentResponse:
    spent = compute_spent(db, budget.user_id, budget.month, budget.category)
    limit = to_money(budget.limit_amount)
    return BudgetWithSpentResponse(
        id=budget.id,
        user_id=budget.user_id,
        month=budget.month,
        category=budget.category,
        limit_amount=limit,
        created_at=budget.created_at,
        spent_amount=spent,
        remaining_amount=limit - spent,
        percentage_spent=percentage(spent, limit),
        is_over_budget=spent > limit,
    )


def summarize_budgets(budgets: list[BudgetWithSpentResponse]) -> BudgetSummary:
    """Totals across enriched budgets. The average percentage is an unweighted mean."""
    count = len(budgets)
    total_limit = sum((b.limit_amount for b in budgets), ZERO)
    total_spent = sum((b.spent_amount for b in budgets), ZERO)
    average = (
        sum((b.percentage_spent for b in budgets), ZERO) / count if count else ZERO
    )
    return BudgetSummary(
        total_budgets=count,
        total_limit_amount=round2(total_limit),
        total_spent_amount=round2(total_spent),
        total_remaining_amount=round2(total_limit - total_spent),
        over_budget_count=sum(1 for b in budgets if b.is_over_budget),
        average_percentage_spent=round2(average),
    )


# ─── CRUD ───────────────────────────────────────────────────────────────────────

def _get_owned(db: Session, user_id: uuid.UUID, budget_id: uuid.UUID) -> Budget:
    budget = db.execute(
        select(Budget).where(Budget.id == budget_id, Budget.user_id == user_id)
    ).scalar_one_or_none()
    if budget is None:
        raise NotFoundError(f"Budget {budget_id} not found")
    return budget


def list_budgets(
    db: Session,
    user_id: uuid.UUID,
    month: str | None = None,
    category: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> BudgetPage:
    filters = [Budget.user_id == user_id]
    if month:
        filters.append(Budget.month == month)
    if category:
        filters.append(Budget.category == category)

    total = db.execute(select(func.count(Budget.id)).where(*filters)).scalar() or 0
    rows = db.execute(
        select(Budget)
        .where(*filters)
        .order_by(Budget.month.desc(), Budget.category)
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    return BudgetPage(
        budgets=[enrich_budget(db, b) for b in rows],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


def get_budget(db: Session, user_id: uuid.UUID, budget_id: uuid.UUID) -> BudgetWithSpentResponse:
    return enrich_budget(db, _get_owned(db, user_id, budget_id))


def create_budget(db: Session, user_id: uuid.UUID, payload: BudgetCreate) -> BudgetWithSpentResponse:
    existing = db.execute(
        select(Budget.id).where(
            Budget.user_id == user_id,
            Budget.month == payload.month,
            Budget.category == payload.category,
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(f"Budget for {payload.category} in {payload.month} already exists")

    budget = Budget(
        user_id=user_id,
        month=payload.month,
        category=payload.category,
        limit_amount=payload.limit_amount,
        spent_amount=compute_spent(db, user_id, payload.month, payload.category),
    )
    db.add(budget)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"Budget for {payload.category} in {payload.month} already exists")
    db.refresh(budget)
    logger.info("Created budget %s (%s %s) for user %s", budget.id, budget.month, budget.category, user_id)
    return enrich_budget(db, budget)


def update_budget(
    db: Session, user_id: uuid.UUID, budget_id: uuid.UUID, payload: BudgetUpdate
) -> BudgetWithSpentResponse:
    budget = _get_owned(db, user_id, budget_id)
    if payload.limit_amount is not None:
        budget.limit_amount = payload.limit_amount
    db.commit()
    db.refresh(budget)
    return enrich_budget(db, budget)


def delete_budget(db: Session, user_id: uuid.UUID, budget_id: uuid.UUID) -> None:
    budget = _get_owned(db, user_id, budget_id)
    db.delete(budget)
    db.commit()
    logger.info("Deleted budget %s for user %s", budget_id, user_id)


# ─── Reporting ──────────────────────────────────────────────────────────────────

def get_budget_stats(db: Session, user_id: uuid.UUID, month: str | None = None) -> BudgetStats:
    stmt = select(Budget).where(Budget.user_id == user_id).order_by(Budget.category)
    if month:
        stmt = stmt.where(Budget.month == month)
    budgets = [enrich_budget(db, b) for b in db.execute(stmt).scalars().all()]
    return BudgetStats(summary=summarize_budgets(budgets), budgets=budgets)


def budget_categories(db: Session, user_id: uuid.UUID) -> list[str]:
    return list(db.execute(
        select(Budget.category).where(Budget.user_id == user_id).distinct().order_by(Budget.category)
    ).scalars().all())


def budget_months(db: Session, user_id: uuid.UUID) -> list[str]:
    return list(db.execute(
        select(Budget.month).where(Budget.user_id == user_id).distinct().order_by(Budget.month.desc())
    ).scalars().all())
