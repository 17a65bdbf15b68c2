"""Applying payments and refunds to an invoice."""

from __future__ import annotations

from datetime import datetime
from typing import Tuple

from billing.errors import CurrencyMismatchError, OverpaymentError, OverRefundError, ValidationError
from billing.invoices import recompute_balance, require_open_ledger
from billing.models import Invoice, Payment, PaymentCreate

SETTLING_TYPES = frozenset({"full-payment", "final-payment"})


def apply_payment(
    invoice: Invoice,
    data: PaymentCreate,
    *,
    payment_id: str,
    number: str,
    now: datetime,
    tolerance: int = 0,
) -> Tuple[Payment, Invoice]:
    """
    Validate a payment against the invoice and return (payment, updated invoice).

    Nothing is persisted here; the caller stores both records together.
    """
    require_open_ledger(invoice, "recording payments")
    amount = data.amount
    if amount.currency != invoice.currency:
        raise CurrencyMismatchError(
            f"Payment is in {amount.currency}, invoice {invoice.number} is in {invoice.currency}.",
            details={"invoice": invoice.currency, "payment": amount.currency},
        )
    if not amount.is_positive():
        raise ValidationError("Payment amount must be greater than zero.")
    if data.payment_date is not None and data.payment_date > now:
        raise ValidationError("Payment date cannot be in the future.")

    if data.type == "refund":
        if amount > invoice.amount_paid:
            raise OverRefundError(
                f"Refund of {amount} exceeds the {invoice.amount_paid} paid on invoice {invoice.number}.",
                details={"amount": amount.amount, "amount_paid": invoice.amount_paid.amount},
            )
        amount_paid = invoice.amount_paid - amount
    else:
        if amount > invoice.balance:
            raise OverpaymentError(
                f"Payment of {amount} exceeds the outstanding balance {invoice.balance} on invoice {invoice.number}.",
                details={"amount": amount.amount, "balance": invoice.balance.amount},
            )
        if data.type in SETTLING_TYPES and invoice.balance.amount - amount.amount > tolerance:
            raise OverpaymentError(
                f"A {data.type} must settle the balance of {invoice.balance}; received {amount}.",
                details={"amount": amount.amount, "balance": invoice.balance.amount},
            )
        amount_paid = invoice.amount_paid + amount

    payment = Payment(
        id=payment_id,
        number=number,
        invoice_id=invoice.id,
        amount=amount,
        method=data.method,
        type=data.type,
        payment_date=data.payment_date or now,
        transaction_id=data.transaction_id,
        notes=data.notes,
        recorded_at=now,
    )
    updated = recompute_balance(invoice.model_copy(update={"amount_paid": amount_paid, "updated_at": now}), now)
    return payment, updated
