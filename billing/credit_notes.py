"""Credit notes: reductions of what an invoice asks the customer to pay."""

from __future__ import annotations

from datetime import datetime
from typing import Tuple

from billing.errors import CurrencyMismatchError, OverCreditError, ValidationError
from billing.invoices import recompute_balance, require_open_ledger
from billing.models import CreditNote, CreditNoteCreate, Invoice
from billing.money import sum_money

REASON_MIN = 10
REASON_MAX = 1000


def apply_credit_note(
    invoice: Invoice,
    data: CreditNoteCreate,
    *,
    credit_note_id: str,
    number: str,
    now: datetime,
) -> Tuple[CreditNote, Invoice]:
    require_open_ledger(invoice, "issuing credit notes")
    reason = (data.reason or "").strip()
    if not REASON_MIN <= len(reason) <= REASON_MAX:
        raise ValidationError(f"Reason must be between {REASON_MIN} and {REASON_MAX} characters.")
    if not data.items:
        raise ValidationError("A credit note needs at least one item.")

    for index, item in enumerate(data.items):
        for money in (item.original_amount, item.credit_amount):
            if money.currency != invoice.currency:
                raise CurrencyMismatchError(
                    f"items[{index}] is in {money.currency}, invoice {invoice.number} is in {invoice.currency}."
                )
        if item.credit_amount.is_negative() or item.credit_amount > item.original_amount:
            raise ValidationError(f"items[{index}]: credit amount must be between 0 and the original amount.")

    total = sum_money((item.credit_amount for item in data.items), invoice.currency)
    creditable = invoice.grand_total - invoice.amount_credited
    if total > creditable:
        raise OverCreditError(
            f"Credit of {total} exceeds the {creditable} still creditable on invoice {invoice.number}.",
            details={"total_credit": total.amount, "creditable": creditable.amount},
        )
    if total > invoice.balance:
        raise OverCreditError(
            f"Credit of {total} exceeds the outstanding balance {invoice.balance}; refund payments first.",
            details={"total_credit": total.amount, "balance": invoice.balance.amount},
        )

    credit_note = CreditNote(
        id=credit_note_id,
        number=number,
        invoice_id=invoice.id,
        type=data.type,
        reason=reason,
        items=tuple(data.items),
        total_credit=total,
        issued_at=now,
    )
    updated = recompute_balance(
        invoice.model_copy(update={"amount_credited": invoice.amount_credited + total, "updated_at": now}),
        now,
    )
    return credit_note, updated
