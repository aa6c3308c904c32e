import enum
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class CashflowPeriod(str, enum.Enum):
    three_months = "3months"
    six_months = "6months"
    twelve_months = "12months"
    all = "all"


class TrendLabel(str, enum.Enum):
    increasing = "increasing"
    decreasing = "decreasing"
    stable = "stable"
    insufficient_data = "insufficient_data"


# ─── Cashflow ──────────────────────────────────────────────────────────────

class MonthlyCashflow(BaseModel):
    month: str  # YYYY-MM
    income: Decimal
    expenses: Decimal
    net: Decimal
    transaction_count: int


class CashflowSummary(BaseModel):
    total_income: Decimal
    total_expenses: Decimal
    net_cashflow: Decimal
    average_monthly_income: Decimal
    average_monthly_expenses: Decimal
    average_monthly_net: Decimal
    month_count: int


class CashflowReport(BaseModel):
    period: str
    start_date: datetime
    end_date: datetime
    summary: CashflowSummary
    monthly_data: list[MonthlyCashflow]


# ─── Spending by category ──────────────────────────────────────────────────

class CategorySpending(BaseModel):
    category: str
    amount: Decimal
    transaction_count: int
    percentage: Decimal


class CategorySpendingSummary(BaseModel):
    total_spending: Decimal
    category_count: int
    average_transaction_amount: Decimal


class CategorySpendingReport(BaseModel):
    month: str
    start_date: datetime
    end_date: datetime
    summary: CategorySpendingSummary
    spending_by_category: list[CategorySpending]


# ─── Net worth ─────────────────────────────────────────────────────────────

class NetworthAccount(BaseModel):
    id: uuid.UUID
    name: str
    type: str
    balance: Decimal
    currency: str
    institution_name: str | None


class NetworthTypeGroup(BaseModel):
    total_balance: Decimal = Decimal("0")
    account_count: int = 0
    accounts: list[NetworthAccount] = Field(default_factory=list)


class NetworthSummary(BaseModel):
    total_networth: Decimal
    total_accounts: int
    currency_count: int


class NetworthReport(BaseModel):
    as_of_date: datetime
    summary: NetworthSummary
    networth_by_type: dict[str, NetworthTypeGroup]
    networth_by_currency: dict[str, Decimal]
    accounts: list[NetworthAccount]


# ─── Trends & merchants ────────────────────────────────────────────────────

class MonthlySpending(BaseModel):
    month: str
    total_spent: Decimal
    transaction_count: int


class TrendAnalysis(BaseModel):
    trend: TrendLabel
    change_percentage: Decimal = Decimal("0")
    change_amount: Decimal = Decimal("0")
    average_monthly_spending: Decimal = Decimal("0")
    first_month: str | None = None
    last_month: str | None = None


class SpendingTrendsReport(BaseModel):
    period: str
    start_date: datetime
    end_date: datetime
    monthly_trends: list[MonthlySpending]
    trend_analysis: TrendAnalysis


class MerchantSpending(BaseModel):
    merchant: str
    total_spent: Decimal
    transaction_count: int
    average_transaction_amount: Decimal
