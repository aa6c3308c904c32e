"""Read-time spending insights.

Every figure is computed from transactions and accounts at call time; nothing
here is persisted. Grouping by month happens in Python so the same code runs on
PostgreSQL and SQLite.
"""

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from fintrack.models.account import Account, Transaction
from fintrack.schemas.insights import (
    CashflowPeriod,
    CashflowReport,
    CashflowSummary,
    CategorySpending,
    CategorySpendingReport,
    CategorySpendingSummary,
    MerchantSpending,
    MonthlyCashflow,
    MonthlySpending,
    NetworthAccount,
    NetworthReport,
    NetworthSummary,
    NetworthTypeGroup,
    SpendingTrendsReport,
    TrendAnalysis,
    TrendLabel,
)
from fintrack.services.aggregates import (
    ZERO,
    month_bounds,
    month_key,
    months_ago,
    percentage,
    round2,
    safe_ratio,
    to_money,
    utcnow,
)

logger = logging.getLogger(__name__)

_PERIOD_MONTHS = {
    CashflowPeriod.three_months.value: 3,
    CashflowPeriod.six_months.value: 6,
    CashflowPeriod.twelve_months.value: 12,
}
ALL_TIME_START = datetime(2020, 1, 1, tzinfo=timezone.utc)

# A month-over-month change beyond ±10 % counts as a trend
TREND_THRESHOLD = Decimal("10")


def _user_transactions(db: Session, user_id: uuid.UUID, *filters) -> list[Transaction]:
    return list(db.execute(
        select(Transaction)
        .join(Account, Transaction.account_id == Account.id)
        .where(Account.user_id == user_id, *filters)
        .order_by(Transaction.posted_at)
    ).scalars().all())


def _abs(amount) -> Decimal:
    return abs(to_money(amount))


# ─── Cashflow ───────────────────────────────────────────────────────────────────

def period_start(period: str, now: datetime) -> tuple[str, datetime]:
    """Resolve a period name to (normalized period, window start). Unknown → 12 months."""
    value = period.value if isinstance(period, CashflowPeriod) else period
    if value == CashflowPeriod.all.value:
        return value, ALL_TIME_START
    if value not in _PERIOD_MONTHS:
        value = CashflowPeriod.twelve_months.value
    return value, months_ago(now, _PERIOD_MONTHS[value])


def group_cashflow_by_month(transactions: list[Transaction]) -> list[MonthlyCashflow]:
    buckets: dict[str, dict] = defaultdict(lambda: {"income": ZERO, "expenses": ZERO, "count": 0})
    for txn in transactions:
        bucket = buckets[month_key(txn.posted_at)]
        if txn.type == "credit":
            bucket["income"] += to_money(txn.amount)
        else:
            bucket["expenses"] += _abs(txn.amount)
        bucket["count"] += 1

    return [
        MonthlyCashflow(
            month=month,
            income=round2(b["income"]),
            expenses=round2(b["expenses"]),
            net=round2(b["income"] - b["expenses"]),
            transaction_count=b["count"],
        )
        for month, b in sorted(buckets.items())
    ]


def get_cashflow(
    db: Session, user_id: uuid.UUID, period: str = "12months", now: datetime | None = None
) -> CashflowReport:
    now = now or utcnow()
    period, start = period_start(period, now)
    monthly = group_cashflow_by_month(_user_transactions(
        db, user_id, Transaction.posted_at >= start, Transaction.posted_at <= now,
    ))

    months = len(monthly)
    income = sum((m.income for m in monthly), ZERO)
    expenses = sum((m.expenses for m in monthly), ZERO)
    net = income - expenses
    summary = CashflowSummary(
        total_income=round2(income),
        total_expenses=round2(expenses),
        net_cashflow=round2(net),
        average_monthly_income=round2(safe_ratio(income, Decimal(months))),
        average_monthly_expenses=round2(safe_ratio(expenses, Decimal(months))),
        average_monthly_net=round2(safe_ratio(net, Decimal(months))),
        month_count=months,
    )
    return CashflowReport(period=period, start_date=start, end_date=now, summary=summary, monthly_data=monthly)


# ─── Spending by category ───────────────────────────────────────────────────────

def get_spending_by_category(
    db: Session, user_id: uuid.UUID, month: str | None = None, now: datetime | None = None
) -> CategorySpendingReport:
    month = month or month_key(now or utcnow())
    start, end = month_bounds(month)
    debits = _user_transactions(
        db, user_id,
        Transaction.type == "debit",
        Transaction.category.is_not(None),
        Transaction.posted_at >= start,
        Transaction.posted_at <= end,
    )

    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for txn in debits:
        totals[txn.category] += _abs(txn.amount)
        counts[txn.category] += 1

    grand_total = sum(totals.values(), ZERO)
    categories = sorted(
        (
            CategorySpending(
                category=category,
                amount=round2(amount),
                transaction_count=counts[category],
                percentage=percentage(amount, grand_total),
            )
            for category, amount in totals.items()
        ),
        key=lambda c: (-c.amount, c.category),
    )
    summary = CategorySpendingSummary(
        total_spending=round2(grand_total),
        category_count=len(categories),
        average_transaction_amount=round2(safe_ratio(grand_total, Decimal(len(debits)))),
    )
    return CategorySpendingReport(
        month=month, start_date=start, end_date=end, summary=summary, spending_by_category=categories,
    )


# ─── Net worth ──────────────────────────────────────────────────────────────────

def get_networth(db: Session, user_id: uuid.UUID, now: datetime | None = None) -> NetworthReport:
    """Balances grouped by account type and by currency. No currency conversion."""
    accounts = db.execute(
        select(Account).where(Account.user_id == user_id).order_by(Account.type, Account.name)
    ).scalars().all()

    by_type: dict[str, NetworthTypeGroup] = {}
    by_currency: dict[str, Decimal] = defaultdict(lambda: ZERO)
    items: list[NetworthAccount] = []
    total = ZERO

    for acc in accounts:
        balance = to_money(acc.balance)
        currency = acc.currency or "USD"
        item = NetworthAccount(
            id=acc.id,
            name=acc.name,
            type=acc.type,
            balance=balance,
            currency=currency,
            institution_name=acc.institution_name,
        )
        group = by_type.setdefault(acc.type, NetworthTypeGroup())
        group.total_balance += balance
        group.account_count += 1
        group.accounts.append(item)
        by_currency[currency] += balance
        items.append(item)
        total += balance

    return NetworthReport(
        as_of_date=now or utcnow(),
        summary=NetworthSummary(
            total_networth=round2(total),
            total_accounts=len(items),
            currency_count=len(by_currency),
        ),
        networth_by_type=by_type,
        networth_by_currency={c: round2(v) for c, v in by_currency.items()},
        accounts=items,
    )


# ─── Spending trends ────────────────────────────────────────────────────────────

def analyze_trend(monthly: list[MonthlySpending]) -> TrendAnalysis:
    """Compare the first and last month of a chronological series."""
    if not monthly:
        return TrendAnalysis(trend=TrendLabel.insufficient_data)
    if len(monthly) == 1:
        return TrendAnalysis(
            trend=TrendLabel.insufficient_data,
            average_monthly_spending=round2(monthly[0].total_spent),
        )

    first, last = monthly[0], monthly[-1]
    change = last.total_spent - first.total_spent
    change_pct = safe_ratio(change, first.total_spent) * 100

    if change_pct > TREND_THRESHOLD:
        trend = TrendLabel.increasing
    elif change_pct < -TREND_THRESHOLD:
        trend = TrendLabel.decreasing
    else:
        trend = TrendLabel.stable

    average = sum((m.total_spent for m in monthly), ZERO) / len(monthly)
    return TrendAnalysis(
        trend=trend,
        change_percentage=round2(change_pct),
        change_amount=round2(change),
        average_monthly_spending=round2(average),
        first_month=first.month,
        last_month=last.month,
    )


def get_spending_trends(
    db: Session, user_id: uuid.UUID, months: int = 6, now: datetime | None = None
) -> SpendingTrendsReport:
    now = now or utcnow()
    start = months_ago(now, months)
    debits = _user_transactions(
        db, user_id,
        Transaction.type == "debit",
        Transaction.posted_at >= start,
        Transaction.posted_at <= now,
    )

    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for txn in debits:
        key = month_key(txn.posted_at)
        totals[key] += _abs(txn.amount)
        counts[key] += 1

    monthly = [
        MonthlySpending(month=m, total_spent=round2(totals[m]), transaction_count=counts[m])
        for m in sorted(totals)
    ]
    return SpendingTrendsReport(
        period=f"{months} months",
        start_date=start,
        end_date=now,
        monthly_trends=monthly,
        trend_analysis=analyze_trend(monthly),
    )


# ─── Top merchants ──────────────────────────────────────────────────────────────

def get_top_merchants(
    db: Session, user_id: uuid.UUID, month: str | None = None, limit: int = 10
) -> list[MerchantSpending]:
    filters = [Transaction.type == "debit", Transaction.merchant.is_not(None)]
    if month:
        start, end = month_bounds(month)
        filters += [Transaction.posted_at >= start, Transaction.posted_at <= end]

    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for txn in _user_transactions(db, user_id, *filters):
        totals[txn.merchant] += _abs(txn.amount)
        counts[txn.merchant] += 1

    ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))[:limit]
    return [
        MerchantSpending(
            merchant=merchant,
            total_spent=round2(total),
            transaction_count=counts[merchant],
            average_transaction_amount=round2(total / counts[merchant]),
        )
        for merchant, total in ranked
    ]
