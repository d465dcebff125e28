"""Pytest configuration and fixtures."""

import os
from datetime import UTC, date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("COMMISSION_RATE", "6")
os.environ.setdefault("BALANCE_TOLERANCE", "0.01")
os.environ.setdefault("TRANSPORT_API_URL", "http://localhost:3001")

from freight_ledger.config import get_settings  # noqa: E402
from freight_ledger.models import (  # noqa: E402
    Advance,
    BankEntry,
    Bill,
    BillTrip,
    Memo,
    Party,
    Supplier,
)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings so each test sees the current environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def party():
    """Customer party."""
    return Party(id="party-1", name="Sri Balaji Traders")


@pytest.fixture
def supplier():
    """Vehicle owner."""
    return Supplier(id="supplier-1", name="Ravi Transport")


@pytest.fixture
def bill(party):
    """Bill from scenario 1: 50000 freight, 2000 detention, 500 mamul, 10000 advance."""
    return Bill(
        id="bill-1",
        bill_no="B-001",
        bill_date=date(2024, 1, 5),
        party_id=party.id,
        party_name=party.name,
        trips=[
            BillTrip(
                cn_no="CN-1",
                origin="Chennai",
                destination="Bangalore",
                vehicle="TN01AB1234",
                freight=Decimal("50000"),
            )
        ],
        detention=Decimal("2000"),
        mamul=Decimal("500"),
        advances=[Advance(id="adv-1", amount=Decimal("10000"), date=date(2024, 1, 5))],
        balance=Decimal("41500"),
        created_at=datetime(2024, 1, 5, 9, 0, tzinfo=UTC),
    )


@pytest.fixture
def memo(supplier):
    """Memo from scenario 4: 20000 freight, 6% commission, 300 mamul."""
    return Memo(
        id="memo-1",
        memo_no="M-001",
        loading_date=date(2024, 1, 5),
        origin="Chennai",
        destination="Bangalore",
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        vehicle="TN01AB1234",
        freight=Decimal("20000"),
        commission=Decimal("1200"),
        mamul=Decimal("300"),
        balance=Decimal("18500"),
        created_at=datetime(2024, 1, 5, 9, 0, tzinfo=UTC),
    )


@pytest.fixture
def make_bank_entry():
    """Factory for bank entries."""

    def _make(
        entry_id: str,
        amount: str,
        on: date,
        type: str = "credit",
        category: str = "bill",
        related_id: str | None = None,
        related_name: str | None = None,
    ) -> BankEntry:
        return BankEntry(
            id=entry_id,
            date=on,
            type=type,
            amount=Decimal(amount),
            narration=f"Entry {entry_id}",
            category=category,
            related_id=related_id,
            related_name=related_name,
        )

    return _make
