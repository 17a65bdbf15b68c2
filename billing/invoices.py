"""Invoice construction and the invoice status machine."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional, Sequence

from billing.config import BillingSettings
from billing.errors import InvalidTransitionError, ValidationError
from billing.models import Customer, Discount, Invoice, InvoiceCreate, InvoiceType, LineItem
from billing.money import Money
from billing.totals import compute_document_totals
from billing.validation import resolve_currency, validate_customer

# Statuses recompute_balance never rewrites.
FROZEN_STATUSES = frozenset({"draft", "cancelled"})
OVERDUE_ELIGIBLE = frozenset({"issued", "partially-paid"})


def new_invoice(
    *,
    invoice_id: str,
    number: str,
    lead_id: str,
    customer: Customer,
    invoice_type: InvoiceType,
    currency: str,
    items: Sequence[LineItem],
    tax_rate: Decimal,
    discount: Discount,
    due_date: Optional[date],
    now: datetime,
    quotation_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> Invoice:
    """Validate inputs and return a draft invoice with nothing paid or credited."""
    validate_customer(customer, required=True)
    if due_date is None:
        raise ValidationError("Due date is required.")
    totals = compute_document_totals(items, tax_rate, discount, currency=currency)
    zero = Money.zero(currency)
    return Invoice(
        id=invoice_id,
        number=number,
        quotation_id=quotation_id,
        lead_id=lead_id,
        customer=customer,
        type=invoice_type,
        currency=currency,
        items=tuple(items),
        tax_rate=tax_rate,
        discount=discount,
        totals=totals,
        due_date=due_date,
        grand_total=totals.grand_total,
        amount_paid=zero,
        amount_credited=zero,
        balance=totals.grand_total,
        status="draft",
        notes=notes,
        created_at=now,
        updated_at=now,
    )


def build_invoice(
    data: InvoiceCreate,
    *,
    invoice_id: str,
    number: str,
    now: datetime,
    settings: BillingSettings,
) -> Invoice:
    currency = resolve_currency(data.currency, settings)
    return new_invoice(
        invoice_id=invoice_id,
        number=number,
        lead_id=data.lead_id,
        customer=data.customer,
        invoice_type=data.type,
        currency=currency,
        items=data.items,
        tax_rate=data.tax_rate,
        discount=data.discount,
        due_date=data.due_date or (now + timedelta(days=settings.invoice_due_days)).date(),
        notes=data.notes,
        now=now,
    )


def recompute_balance(invoice: Invoice, now: datetime) -> Invoice:
    """
    Derive balance, payment-progress status and the overdue flag.

    balance = grand_total - amount_paid - amount_credited
    balance == 0 -> paid, balance == grand_total -> issued, otherwise
    partially-paid. Draft and cancelled invoices keep their status.
    Overdue is reported through is_overdue/days_overdue and never
    replaces the payment-progress status.
    """
    balance = invoice.grand_total - invoice.amount_paid - invoice.amount_credited
    status = invoice.status
    if status not in FROZEN_STATUSES:
        if balance.is_zero():
            status = "paid"
        elif balance == invoice.grand_total:
            status = "issued"
        else:
            status = "partially-paid"

    paid_at = invoice.paid_at
    if status == "paid" and paid_at is None:
        paid_at = now
    elif status != "paid":
        paid_at = None

    today = now.date()
    is_overdue = status in OVERDUE_ELIGIBLE and balance.is_positive() and today > invoice.due_date
    return invoice.model_copy(
        update={
            "balance": balance,
            "status": status,
            "paid_at": paid_at,
            "is_overdue": is_overdue,
            "days_overdue": (today - invoice.due_date).days if is_overdue else 0,
        }
    )


def issue_invoice(invoice: Invoice, *, now: datetime) -> Invoice:
    if invoice.status != "draft":
        raise InvalidTransitionError(
            f"Invoice {invoice.number} is {invoice.status}; only draft invoices can be issued.",
            details={"from": invoice.status, "to": "issued"},
        )
    if not invoice.items:
        raise ValidationError("Cannot issue an invoice without items.")
    if invoice.due_date is None:
        raise ValidationError("Cannot issue an invoice without a due date.")
    totals = compute_document_totals(invoice.items, invoice.tax_rate, invoice.discount, currency=invoice.currency)
    if totals != invoice.totals or totals.grand_total != invoice.grand_total:
        raise ValidationError(
            f"Stored totals of invoice {invoice.number} do not match its items.",
            details={"stored": invoice.grand_total.amount, "computed": totals.grand_total.amount},
        )
    issued = invoice.model_copy(update={"status": "issued", "issued_at": now, "updated_at": now})
    return recompute_balance(issued, now)


def cancel_invoice(invoice: Invoice, *, now: datetime, reason: Optional[str] = None) -> Invoice:
    """
    Cancel a draft invoice, or one whose balance has been fully reconciled
    by credit notes. Anything still owed needs a credit note first.
    """
    if invoice.status == "cancelled":
        raise InvalidTransitionError(f"Invoice {invoice.number} is already cancelled.")
    if invoice.status != "draft":
        if invoice.balance.is_positive():
            raise InvalidTransitionError(
                f"Invoice {invoice.number} has an outstanding balance of {invoice.balance}; "
                "issue a credit note for it before cancelling.",
                details={"balance": invoice.balance.amount},
            )
        if invoice.amount_paid.is_positive():
            raise InvalidTransitionError(
                f"Invoice {invoice.number} is settled by payments; refund them and credit the invoice before cancelling.",
                details={"amount_paid": invoice.amount_paid.amount},
            )
    return invoice.model_copy(
        update={
            "status": "cancelled",
            "cancelled_at": now,
            "cancellation_reason": reason,
            "is_overdue": False,
            "days_overdue": 0,
            "updated_at": now,
        }
    )


def require_open_ledger(invoice: Invoice, action: str) -> None:
    if invoice.status == "draft":
        raise InvalidTransitionError(f"Invoice {invoice.number} is still a draft; issue it before {action}.")
    if invoice.status == "cancelled":
        raise InvalidTransitionError(f"Invoice {invoice.number} is cancelled; {action} is not allowed.")
