"""
Tests for the transaction service: manual entry, listing and statistics.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from fintrack.core.exceptions import NotFoundError
from fintrack.schemas.transaction import TransactionCreate, TransactionUpdate
from fintrack.services.categorization import DEFAULT_MERCHANT_RULES
from fintrack.services.transactions import (
    create_manual_transaction,
    delete_transaction,
    get_transaction,
    get_transaction_stats,
    list_transactions,
    transaction_categories,
    update_transaction,
)


def _at(month: int, day: int) -> datetime:
    return datetime(2024, month, day, 12, tzinfo=timezone.utc)


def _create(db, user, account, amount: str, merchant: str | None = "Starbucks", **fields):
    payload = TransactionCreate(
        account_id=account.id,
        posted_at=fields.pop("posted_at", _at(1, 10)),
        amount=Decimal(amount),
        merchant=merchant,
        **fields,
    )
    return create_manual_transaction(db, user.id, payload)


class TestCreateManual:
    def test_derives_type_category_and_name(self, db, user, account):
        txn = _create(db, user, account, "-4.75", merchant="DEBIT Starbucks")

        assert txn.type == "debit"
        assert txn.category == "Food & Dining"
        assert txn.normalized_name == "starbucks"
        assert txn.is_manual is True
        assert txn.source_transaction_id is None

    def test_positive_amount_is_credit(self, db, user, account):
        assert _create(db, user, account, "1200.00", merchant="Employer").type == "credit"

    def test_explicit_values_win(self, db, user, account):
        txn = _create(
            db, user, account, "-4.75",
            type="credit", category="Treats", normalized_name="coffee",
        )

        assert txn.type == "credit"
        assert txn.category == "Treats"
        assert txn.normalized_name == "coffee"

    def test_custom_rules(self, db, user, account):
        payload = TransactionCreate(
            account_id=account.id, posted_at=_at(1, 10), amount=Decimal("-8"), merchant="Corner Bakery",
        )
        rules = DEFAULT_MERCHANT_RULES.with_rule("BAKERY", "Food & Dining")

        assert create_manual_transaction(db, user.id, payload, rules=rules).category == "Food & Dining"

    def test_unmatched_merchant(self, db, user, account):
        assert _create(db, user, account, "-1.00", merchant=None).category == "Uncategorized"

    def test_foreign_account_rejected(self, db, user, make_user, make_account):
        foreign = make_account(make_user())

        with pytest.raises(NotFoundError):
            _create(db, user, foreign, "-1.00")


class TestReadUpdateDelete:
    def test_get_and_ownership(self, db, user, account, make_user):
        txn = _create(db, user, account, "-4.75")

        assert get_transaction(db, user.id, txn.id).id == txn.id
        with pytest.raises(NotFoundError):
            get_transaction(db, make_user().id, txn.id)
        with pytest.raises(NotFoundError):
            get_transaction(db, user.id, uuid.uuid4())

    def test_update_category_and_notes(self, db, user, account):
        txn = _create(db, user, account, "-4.75")

        updated = update_transaction(db, user.id, txn.id, TransactionUpdate(notes="client meeting"))

        assert updated.notes == "client meeting"
        assert updated.category == "Food & Dining"

    def test_delete(self, db, user, account):
        txn = _create(db, user, account, "-4.75")

        delete_transaction(db, user.id, txn.id)

        with pytest.raises(NotFoundError):
            get_transaction(db, user.id, txn.id)


class TestListing:
    def test_pagination_newest_first(self, db, user, account):
        for day in (1, 2, 3):
            _create(db, user, account, "-1.00", posted_at=_at(1, day))

        page = list_transactions(db, user.id, page=1, limit=2)

        assert page.pagination.total == 3
        assert page.pagination.pages == 2
        assert [t.posted_at.day for t in page.transactions] == [3, 2]

    def test_filters(self, db, user, account, make_account):
        savings = make_account(user, name="Savings")
        _create(db, user, account, "-4.75", posted_at=_at(1, 5))
        _create(db, user, account, "-60.00", merchant="Shell", posted_at=_at(2, 5))
        _create(db, user, savings, "-12.00", merchant="Netflix", posted_at=_at(2, 6))

        assert list_transactions(db, user.id, account_id=savings.id).pagination.total == 1
        assert list_transactions(db, user.id, category="Transportation").pagination.total == 1
        assert list_transactions(db, user.id, start_date=_at(2, 1)).pagination.total == 2
        assert list_transactions(db, user.id, end_date=_at(1, 31)).pagination.total == 1

    def test_categories(self, db, user, account):
        _create(db, user, account, "-4.75")
        _create(db, user, account, "-60.00", merchant="Shell")
        _create(db, user, account, "-5.00")

        assert transaction_categories(db, user.id) == ["Food & Dining", "Transportation"]


class TestStats:
    def test_totals(self, db, user, account):
        _create(db, user, account, "-25.50", category="Food")
        _create(db, user, account, "-89.45", category="Food")
        _create(db, user, account, "2000.00", category="Income", merchant="Employer")

        stats = get_transaction_stats(db, user.id)

        assert stats.total_transactions == 3
        assert stats.total_debits == Decimal("114.95")
        assert stats.total_credits == Decimal("2000.00")
        assert stats.net_amount == Decimal("1885.05")
        by_category = {c.category: c for c in stats.category_stats}
        assert by_category["Food"].total_amount == Decimal("-114.95")
        assert by_category["Food"].transaction_count == 2
        assert by_category["Income"].total_amount == Decimal("2000.00")

    def test_empty(self, db, user):
        stats = get_transaction_stats(db, user.id)

        assert stats.total_transactions == 0
        assert stats.net_amount == Decimal("0")
        assert stats.category_stats == []
