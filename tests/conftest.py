"""Pytest fixtures for testing"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Generator, Optional
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from parental_guard.dependencies import GuardServices, build_services
from parental_guard.domain.models import AccountSnapshot, Limits, Payee, Transaction, TransactionStatus, Category
from parental_guard.infrastructure.database.models import Base
from parental_guard.infrastructure.storage.memory import InMemoryAlertSink, InMemoryStorage

ACCOUNT_ID = "acc-minor-1"


# In-memory test database shared by every session of a test
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def now() -> datetime:
    """Tuesday afternoon, inside normal hours"""
    return datetime(2026, 3, 10, 14, 0)


@pytest.fixture
def night() -> datetime:
    """Same Tuesday, 23:30"""
    return datetime(2026, 3, 10, 23, 30)


@pytest.fixture
def make_snapshot(now: datetime) -> Callable[..., AccountSnapshot]:
    """Factory for account snapshots; the account is 90 days old by default"""

    def _make(
        balance: str = "10000",
        limits: Optional[Limits] = None,
        payees=(),
        transactions=(),
        locked_funds=None,
        created_at: Optional[datetime] = None,
        account_id: str = ACCOUNT_ID,
    ) -> AccountSnapshot:
        return AccountSnapshot(
            id=account_id,
            owner_id="minor-1",
            limits=limits or Limits(),
            created_at=created_at or now - timedelta(days=90),
            balance=Decimal(balance),
            locked_funds=locked_funds or {},
            payees=payees,
            transactions=transactions,
        )

    return _make


@pytest.fixture
def completed_tx() -> Callable[..., Transaction]:
    """Factory for ledger entries already completed"""

    def _make(amount: str, timestamp: datetime, category: Category = Category.FOOD, **kwargs) -> Transaction:
        return Transaction(
            amount=Decimal(amount),
            category=category,
            timestamp=timestamp,
            status=TransactionStatus.COMPLETED,
            **kwargs,
        )

    return _make


@pytest.fixture
def payee_factory(now: datetime) -> Callable[..., Payee]:
    def _make(payee_id: str, trusted: bool = False, added_at: Optional[datetime] = None, **kwargs) -> Payee:
        return Payee(
            id=payee_id,
            display_name=payee_id.title(),
            account_number="XXXX1234",
            added_at=added_at or now - timedelta(days=30),
            trusted=trusted,
            **kwargs,
        )

    return _make


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def sink() -> InMemoryAlertSink:
    return InMemoryAlertSink()


@pytest.fixture
def services(storage: InMemoryStorage, sink: InMemoryAlertSink) -> GuardServices:
    """Fully wired decision core over the in-memory store"""
    return build_services(storage, sink)


@pytest.fixture
def seed(storage: InMemoryStorage) -> Callable[[AccountSnapshot], AccountSnapshot]:
    """Insert a snapshot into the in-memory store"""
    return storage.save
