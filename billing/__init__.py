"""Billing ledger: quotations, invoices, payments and credit notes."""

from .engine import BillingLedgerEngine, LedgerView
from .errors import BillingError, IdentifierCollisionError
from .money import Money

__all__ = [
    "BillingError",
    "BillingLedgerEngine",
    "IdentifierCollisionError",
    "LedgerView",
    "Money",
]
