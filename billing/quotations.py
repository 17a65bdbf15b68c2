"""Quotation lifecycle: creation, edits, status edges and conversion to an invoice."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Iterable, List, Tuple

from billing.config import BillingSettings
from billing.errors import ImmutableDocumentError, InvalidTransitionError, ValidationError
from billing.invoices import new_invoice
from billing.models import (
    ConversionRequest,
    Invoice,
    Quotation,
    QuotationCreate,
    QuotationStatus,
    QuotationUpdate,
)
from billing.totals import compute_document_totals
from billing.validation import resolve_currency, validate_customer

QUOTATION_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "draft": frozenset({"sent"}),
    "sent": frozenset({"accepted", "expired", "rejected"}),
}
EDITABLE_STATUSES = frozenset({"draft", "sent"})


def _require_future(valid_until: datetime, now: datetime) -> None:
    if valid_until <= now:
        raise ValidationError("Valid until date must be in the future.")


def build_quotation(
    data: QuotationCreate,
    *,
    quotation_id: str,
    number: str,
    now: datetime,
    settings: BillingSettings,
) -> Quotation:
    validate_customer(data.customer, required=False)
    currency = resolve_currency(data.currency, settings)
    valid_until = data.valid_until or now + timedelta(days=settings.quotation_validity_days)
    _require_future(valid_until, now)
    totals = compute_document_totals(data.items, data.tax_rate, data.discount, currency=currency)
    return Quotation(
        id=quotation_id,
        number=number,
        lead_id=data.lead_id,
        customer=data.customer,
        currency=currency,
        items=tuple(data.items),
        tax_rate=data.tax_rate,
        discount=data.discount,
        valid_until=valid_until,
        status="draft",
        totals=totals,
        notes=data.notes,
        created_at=now,
        updated_at=now,
    )


def update_quotation(quotation: Quotation, changes: QuotationUpdate, *, now: datetime) -> Quotation:
    """Apply field edits to a draft/sent quotation and recompute its totals."""
    if quotation.status not in EDITABLE_STATUSES:
        raise ImmutableDocumentError(
            f"Quotation {quotation.number} is {quotation.status} and can no longer be edited.",
            details={"status": quotation.status},
        )
    supplied = changes.model_dump(exclude_unset=True)
    customer = changes.customer if "customer" in supplied else quotation.customer
    items = tuple(changes.items) if changes.items is not None else quotation.items
    tax_rate = changes.tax_rate if changes.tax_rate is not None else quotation.tax_rate
    discount = changes.discount if changes.discount is not None else quotation.discount
    valid_until = quotation.valid_until
    if changes.valid_until is not None:
        _require_future(changes.valid_until, now)
        valid_until = changes.valid_until

    validate_customer(customer, required=False)
    totals = compute_document_totals(items, tax_rate, discount, currency=quotation.currency)
    return quotation.model_copy(
        update={
            "customer": customer,
            "items": items,
            "tax_rate": tax_rate,
            "discount": discount,
            "valid_until": valid_until,
            "totals": totals,
            "notes": changes.notes if "notes" in supplied else quotation.notes,
            "updated_at": now,
        }
    )


def transition_quotation(quotation: Quotation, target: QuotationStatus, *, now: datetime) -> Quotation:
    allowed = QUOTATION_TRANSITIONS.get(quotation.status, frozenset())
    if target not in allowed:
        raise InvalidTransitionError(
            f"Quotation {quotation.number} cannot move from {quotation.status} to {target}.",
            details={"from": quotation.status, "to": target},
        )
    if target == "accepted" and now > quotation.valid_until:
        raise InvalidTransitionError(f"Quotation {quotation.number} has expired and cannot be accepted.")
    return quotation.model_copy(update={"status": target, "updated_at": now})


def stale_quotations(quotations: Iterable[Quotation], now: datetime) -> List[Quotation]:
    """Sent quotations whose validity window has closed."""
    return [q for q in quotations if q.status == "sent" and q.valid_until < now]


def convert_to_invoice(
    quotation: Quotation,
    request: ConversionRequest,
    *,
    invoice_id: str,
    number: str,
    now: datetime,
    settings: BillingSettings,
) -> Tuple[Invoice, Quotation]:
    """Build a draft invoice from an accepted quotation; returns (invoice, updated quotation)."""
    if quotation.status != "accepted":
        raise InvalidTransitionError(
            f"Only accepted quotations can be converted; {quotation.number} is {quotation.status}.",
            details={"status": quotation.status},
        )
    if quotation.converted_invoice_id:
        raise InvalidTransitionError(
            f"Quotation {quotation.number} was already converted to invoice {quotation.converted_invoice_id}."
        )
    if quotation.customer is None or not quotation.customer.is_complete():
        raise ValidationError("Converting to an invoice requires customer name, email and phone.")

    due_date = request.due_date or (now + timedelta(days=settings.invoice_due_days)).date()
    invoice = new_invoice(
        invoice_id=invoice_id,
        number=number,
        lead_id=quotation.lead_id,
        customer=quotation.customer,
        invoice_type=request.type,
        currency=quotation.currency,
        items=quotation.items,
        tax_rate=quotation.tax_rate,
        discount=quotation.discount,
        due_date=due_date,
        quotation_id=quotation.id,
        notes=quotation.notes,
        now=now,
    )
    converted = quotation.model_copy(update={"converted_invoice_id": invoice.id, "updated_at": now})
    return invoice, converted
