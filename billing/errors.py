"""Typed failures raised by the billing ledger."""

from __future__ import annotations

from typing import Any, Dict, Optional


class BillingError(Exception):
    """Base class for every domain failure surfaced to callers."""

    code = "BILLING_ERROR"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "detail": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(BillingError):
    code = "VALIDATION_ERROR"


class InvalidTransitionError(BillingError):
    code = "INVALID_TRANSITION"


class ImmutableDocumentError(BillingError):
    code = "IMMUTABLE_DOCUMENT"


class OverpaymentError(BillingError):
    code = "OVERPAYMENT"


class OverRefundError(BillingError):
    code = "OVER_REFUND"


class OverCreditError(BillingError):
    code = "OVER_CREDIT"


class CurrencyMismatchError(BillingError):
    code = "CURRENCY_MISMATCH"


class ConcurrentUpdateError(BillingError):
    code = "CONCURRENT_UPDATE"


class NotFoundError(BillingError):
    code = "NOT_FOUND"


class IdentifierCollisionError(RuntimeError):
    """An id generator handed out an id that is already taken."""


__all__ = [
    "BillingError",
    "ConcurrentUpdateError",
    "CurrencyMismatchError",
    "IdentifierCollisionError",
    "ImmutableDocumentError",
    "InvalidTransitionError",
    "NotFoundError",
    "OverCreditError",
    "OverRefundError",
    "OverpaymentError",
    "ValidationError",
]
