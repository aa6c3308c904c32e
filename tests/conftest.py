"""
Shared fixtures: an in-memory SQLite database with the ORM schema, plus small
factories for users, accounts and transactions.

Run with:
    python -m pytest tests -v
"""
import os
import uuid
from datetime import datetime
from decimal import Decimal

from cryptography.fernet import Fernet

# Settings are read at import time; give the test run a valid Fernet key
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from fintrack.core.database import Base, init_db  # noqa: E402
from fintrack.models.account import Account, Transaction  # noqa: E402
from fintrack.models.user import User  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db):
    def _make(email: str | None = None) -> User:
        user = User(email=email or f"{uuid.uuid4().hex[:8]}@example.com", full_name="Test User")
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def user(make_user):
    return make_user("owner@example.com")


@pytest.fixture
def make_account(db):
    def _make(user: User, **fields) -> Account:
        values = {
            "name": "Everyday Chequing",
            "institution_name": "Test Bank",
            "type": "depository",
            "balance": Decimal("0"),
            "currency": "USD",
        }
        values.update(fields)
        account = Account(user_id=user.id, **values)
        db.add(account)
        db.commit()
        return account
    return _make


@pytest.fixture
def account(make_account, user):
    return make_account(user)


@pytest.fixture
def make_transaction(db):
    def _make(account: Account, amount: str, posted_at: datetime, **fields) -> Transaction:
        value = Decimal(amount)
        txn = Transaction(
            account_id=account.id,
            amount=value,
            type="credit" if value > 0 else "debit",
            posted_at=posted_at,
            **fields,
        )
        db.add(txn)
        db.commit()
        return txn
    return _make

