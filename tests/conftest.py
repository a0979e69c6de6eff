"""
Shared fixtures for the marketplace test suite.

Ledger-store fixtures cover both adapters: the in-memory store and the
SQL store on a throwaway SQLite file.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from fracart.domain.marketplace.entities import (
    Artwork,
    ArtworkStatus,
    RequestContext,
    Role,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from fracart.infrastructure.marketplace.database import build_engine, ensure_schema
from fracart.infrastructure.marketplace.memory_ledger_store import InMemoryLedgerStore
from fracart.infrastructure.marketplace.sql_ledger_store import SqlLedgerStore

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable UTC clock for time-driven auction transitions."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


def make_artwork(
    owner_id=None,
    price: str = "100",
    fractions: int = 100,
    title: str = "Untitled",
    created_at: datetime = T0,
    **overrides,
) -> Artwork:
    artwork_id = overrides.pop("id", uuid4())
    status = overrides.pop("status", ArtworkStatus.AVAILABLE)
    return Artwork(
        id=artwork_id,
        title=title,
        owner_user_id=owner_id or uuid4(),
        price_amount=Decimal(price),
        fractions_total=fractions,
        fractions_available=fractions,
        status=status,
        created_at=created_at,
        **overrides,
    )


def make_purchase(
    buyer_id,
    artwork_id,
    percentage: str,
    amount: str,
    units: int = 1,
    status: TransactionStatus = TransactionStatus.COMPLETED,
    created_at: datetime = T0,
    seller_id=None,
) -> Transaction:
    return Transaction(
        buyer_user_id=buyer_id,
        seller_user_id=seller_id,
        artwork_id=artwork_id,
        amount=Decimal(amount),
        kind=TransactionKind.FRACTION_PURCHASE,
        status=status,
        fraction_units=units,
        metadata={"ownership_percentage": percentage, "fraction_count": units},
        created_at=created_at,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def artist() -> RequestContext:
    return RequestContext(user_id=uuid4(), role=Role.ARTIST)


@pytest.fixture
def investor() -> RequestContext:
    return RequestContext(user_id=uuid4(), role=Role.INVESTOR)


@pytest.fixture
def other_investor() -> RequestContext:
    return RequestContext(user_id=uuid4(), role=Role.INVESTOR)


@pytest.fixture
def memory_store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def sql_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    ensure_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(sql_engine) -> SqlLedgerStore:
    return SqlLedgerStore(sql_engine)


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Each test using this fixture runs once per ledger adapter."""
    if request.param == "memory":
        yield InMemoryLedgerStore()
        return
    yield SqlLedgerStore(request.getfixturevalue("sql_engine"))
