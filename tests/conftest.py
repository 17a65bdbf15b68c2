import os
from datetime import datetime, timezone

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_billing.db")

import pytest  # noqa: E402

from billing.engine import BillingLedgerEngine  # noqa: E402
from billing.interfaces import FixedClock, InMemoryLeadDirectory, SequentialIdGenerator  # noqa: E402

NOW = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

CUSTOMER = {"name": "Nimal Perera", "email": "Nimal@Example.com", "phone": "+94 77 1234567"}


def usd(amount: str) -> dict:
    """Money payload in USD from a major-unit string."""
    cents = int(round(float(amount) * 100))
    return {"amount": cents, "currency": "USD"}


def item(description: str = "Hotel night", quantity: int = 1, price: str = "100.00", **extra) -> dict:
    return {"description": description, "quantity": quantity, "unit_price": usd(price), **extra}


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def leads():
    return InMemoryLeadDirectory(["lead-1", "lead-2"])


@pytest.fixture
def engine(clock, leads):
    return BillingLedgerEngine(leads=leads, ids=SequentialIdGenerator(), clock=clock)


@pytest.fixture
def issued_invoice(engine):
    """The $198.00 invoice: 2 x $100, $20 fixed discount, 10% tax."""
    invoice = engine.create_invoice(
        {
            "lead_id": "lead-1",
            "customer": CUSTOMER,
            "currency": "USD",
            "items": [item(quantity=2, price="100.00")],
            "tax_rate": "10",
            "discount": {"type": "fixed", "value": "20"},
            "due_date": "2024-06-15",
        }
    )
    return engine.issue_invoice(invoice.id)
