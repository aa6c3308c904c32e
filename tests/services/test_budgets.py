"""
Tests for budget spending: spent is always recomputed from transactions.
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from fintrack.core.exceptions import ConflictError, NotFoundError
from fintrack.models.budget import Budget
from fintrack.schemas.budget import BudgetCreate, BudgetUpdate
from fintrack.services.budgets import (
    budget_categories,
    budget_months,
    compute_spent,
    create_budget,
    delete_budget,
    enrich_budget,
    get_budget,
    get_budget_stats,
    list_budgets,
    summarize_budgets,
    update_budget,
)


def _at(month: int, day: int, hour: int = 12, minute: int = 0, second: int = 0) -> datetime:
    return datetime(2024, month, day, hour, minute, second, tzinfo=timezone.utc)


@pytest.fixture
def january_food(account, make_transaction):
    make_transaction(account, "-25.50", _at(1, 5), category="Food", merchant="Loblaws")
    make_transaction(account, "-89.45", _at(1, 20), category="Food", merchant="Metro")
    make_transaction(account, "2000.00", _at(1, 31), category="Food", merchant="Payroll")


class TestComputeSpent:
    def test_sums_absolute_debits(self, db, user, january_food):
        assert compute_spent(db, user.id, "2024-01", "Food") == Decimal("114.95")

    def test_zero_when_nothing_matches(self, db, user, january_food):
        assert compute_spent(db, user.id, "2024-01", "Travel") == Decimal("0")
        assert compute_spent(db, user.id, "2024-02", "Food") == Decimal("0")

    def test_category_match_is_exact(self, db, user, account, make_transaction):
        make_transaction(account, "-10.00", _at(1, 5), category="food")
        assert compute_spent(db, user.id, "2024-01", "Food") == Decimal("0")

    def test_month_boundaries_inclusive(self, db, user, account, make_transaction):
        make_transaction(account, "-1.00", _at(1, 1, 0, 0, 0), category="Food")
        make_transaction(account, "-2.00", _at(1, 31, 23, 59, 59), category="Food")
        make_transaction(account, "-4.00", _at(2, 1, 0, 0, 0), category="Food")
        assert compute_spent(db, user.id, "2024-01", "Food") == Decimal("3.00")

    def test_other_users_excluded(self, db, user, make_user, make_account, make_transaction):
        stranger = make_user()
        make_transaction(make_account(stranger), "-50.00", _at(1, 5), category="Food")
        assert compute_spent(db, user.id, "2024-01", "Food") == Decimal("0")

    def test_invalid_month(self, db, user):
        with pytest.raises(ValueError):
            compute_spent(db, user.id, "2024-13", "Food")


class TestEnrichBudget:
    def _budget(self, db, user, limit: str, category: str = "Food") -> Budget:
        budget = Budget(user_id=user.id, month="2024-01", category=category, limit_amount=Decimal(limit))
        db.add(budget)
        db.commit()
        return budget

    def test_under_budget(self, db, user, january_food):
        enriched = enrich_budget(db, self._budget(db, user, "200.00"))

        assert enriched.spent_amount == Decimal("114.95")
        assert enriched.remaining_amount == Decimal("85.05")
        assert enriched.percentage_spent == Decimal("57.48")
        assert enriched.is_over_budget is False
        assert enriched.remaining_amount + enriched.spent_amount == enriched.limit_amount

    def test_over_budget(self, db, user, january_food):
        enriched = enrich_budget(db, self._budget(db, user, "100.00"))

        assert enriched.remaining_amount == Decimal("-14.95")
        assert enriched.is_over_budget is True

    def test_zero_limit(self, db, user, january_food):
        enriched = enrich_budget(db, self._budget(db, user, "0"))

        assert enriched.percentage_spent == Decimal("0")
        assert enriched.is_over_budget is True

    def test_stored_spent_is_ignored(self, db, user, january_food):
        budget = self._budget(db, user, "200.00")
        budget.spent_amount = Decimal("999.99")
        db.commit()

        assert enrich_budget(db, budget).spent_amount == Decimal("114.95")


class TestSummary:
    def test_empty(self):
        summary = summarize_budgets([])
        assert summary.total_budgets == 0
        assert summary.average_percentage_spent == Decimal("0")

    def test_unweighted_average(self, db, user, account, make_transaction):
        make_transaction(account, "-50.00", _at(1, 5), category="Food")
        make_transaction(account, "-10.00", _at(1, 5), category="Fun")
        create_budget(db, user.id, BudgetCreate(month="2024-01", category="Food", limit_amount="100"))
        create_budget(db, user.id, BudgetCreate(month="2024-01", category="Fun", limit_amount="1000"))

        stats = get_budget_stats(db, user.id, month="2024-01")

        # (50 % + 1 %) / 2, not 60 / 1100
        assert stats.summary.average_percentage_spent == Decimal("25.50")
        assert stats.summary.total_limit_amount == Decimal("1100.00")
        assert stats.summary.total_spent_amount == Decimal("60.00")
        assert stats.summary.total_remaining_amount == Decimal("1040.00")
        assert stats.summary.over_budget_count == 0


class TestBudgetCrud:
    def test_create_and_get(self, db, user, january_food):
        created = create_budget(db, user.id, BudgetCreate(month="2024-01", category="Food", limit_amount="150"))

        fetched = get_budget(db, user.id, created.id)
        assert fetched.spent_amount == Decimal("114.95")
        assert fetched.limit_amount == Decimal("150.00")

    def test_duplicate_conflicts(self, db, user):
        payload = BudgetCreate(month="2024-01", category="Food", limit_amount="150")
        create_budget(db, user.id, payload)

        with pytest.raises(ConflictError):
            create_budget(db, user.id, payload)

    def test_update_limit(self, db, user, january_food):
        created = create_budget(db, user.id, BudgetCreate(month="2024-01", category="Food", limit_amount="150"))

        updated = update_budget(db, user.id, created.id, BudgetUpdate(limit_amount="100"))

        assert updated.limit_amount == Decimal("100.00")
        assert updated.is_over_budget is True

    def test_other_users_budget_not_found(self, db, user, make_user):
        created = create_budget(db, user.id, BudgetCreate(month="2024-01", category="Food", limit_amount="150"))
        stranger = make_user()

        with pytest.raises(NotFoundError):
            get_budget(db, stranger.id, created.id)
        with pytest.raises(NotFoundError):
            delete_budget(db, stranger.id, created.id)

    def test_delete(self, db, user):
        created = create_budget(db, user.id, BudgetCreate(month="2024-01", category="Food", limit_amount="150"))

        delete_budget(db, user.id, created.id)

        with pytest.raises(NotFoundError):
            get_budget(db, user.id, created.id)

    def test_list_filters_and_pagination(self, db, user):
        for month in ("2024-01", "2024-02", "2024-03"):
            create_budget(db, user.id, BudgetCreate(month=month, category="Food", limit_amount="100"))
        create_budget(db, user.id, BudgetCreate(month="2024-03", category="Rent", limit_amount="1500"))

        page = list_budgets(db, user.id, page=1, limit=2)
        assert page.pagination.total == 4
        assert page.pagination.pages == 2
        assert [b.month for b in page.budgets] == ["2024-03", "2024-03"]

        assert len(list_budgets(db, user.id, month="2024-03").budgets) == 2
        assert len(list_budgets(db, user.id, category="Food").budgets) == 3

    def test_categories_and_months(self, db, user):
        create_budget(db, user.id, BudgetCreate(month="2024-01", category="Rent", limit_amount="1500"))
        create_budget(db, user.id, BudgetCreate(month="2024-02", category="Food", limit_amount="100"))
        create_budget(db, user.id, BudgetCreate(month="2024-02", category="Rent", limit_amount="1500"))

        assert budget_categories(db, user.id) == ["Food", "Rent"]
        assert budget_months(db, user.id) == ["2024-02", "2024-01"]
