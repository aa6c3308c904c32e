import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class BudgetCreate(BaseModel):
    month: str = Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")  # YYYY-MM
    category: str = Field(min_length=1, max_length=100)
    limit_amount: Decimal = Field(ge=0, decimal_places=2)


class BudgetUpdate(BaseModel):
    limit_amount: Decimal | None = Field(default=None, ge=0, decimal_places=2)


class BudgetResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    month: str
    category: str
    limit_amount: Decimal
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class BudgetWithSpentResponse(BudgetResponse):
    spent_amount: Decimal
    remaining_amount: Decimal   # negative if over budget
    percentage_spent: Decimal   # (spent_amount / limit_amount) * 100
    is_over_budget: bool


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class BudgetPage(BaseModel):
    budgets: list[BudgetWithSpentResponse]
    pagination: Pagination


class BudgetSummary(BaseModel):
    total_budgets: int
    total_limit_amount: Decimal
    total_spent_amount: Decimal
    total_remaining_amount: Decimal
    over_budget_count: int
    average_percentage_spent: Decimal


class BudgetStats(BaseModel):
    summary: BudgetSummary
    budgets: list[BudgetWithSpentResponse]
