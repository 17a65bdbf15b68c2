"""
Billing ledger engine.

The single entry point for quotations, invoices, payments and credit notes.
Every mutation runs under the per-document lock of the document it changes
and is written to the store in one call, so a failure leaves the store
exactly as it was.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence as SequenceABC
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Tuple, Union, get_args

from billing import credit_notes, invoices, payments, quotations
from billing.config import BillingSettings, load_billing_config
from billing.errors import BillingError, NotFoundError, ValidationError
from billing.interfaces import Clock, DocumentRenderer, IdGenerator, LeadDirectory, SystemClock, UuidIdGenerator
from billing.locks import DocumentLocks
from billing.models import (
    ConversionRequest,
    CreditNote,
    CreditNoteCreate,
    Discount,
    DocumentTotals,
    Invoice,
    InvoiceCreate,
    LineItem,
    Payment,
    PaymentCreate,
    Quotation,
    QuotationCreate,
    QuotationStatus,
    QuotationUpdate,
)
from billing.money import Number
from billing.numbering import format_document_number
from billing.store import InMemoryLedgerStore, LedgerStore
from billing.totals import compute_document_totals
from billing.validation import parse_input

logger = logging.getLogger(__name__)

Payload = Union[Mapping[str, Any], Any]


class LedgerView(SequenceABC):
    """
    Read-only view of a ledger taken at call time.

    Iterating it twice yields the same entries in the same order.
    """

    def __init__(self, entries: Tuple[Any, ...]) -> None:
        self._entries = entries

    def __iter__(self) -> Iterator[Any]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index):
        return self._entries[index]

    def __repr__(self) -> str:
        return f"LedgerView({len(self._entries)} entries)"


class BillingLedgerEngine:
    def __init__(
        self,
        store: Optional[LedgerStore] = None,
        *,
        leads: Optional[LeadDirectory] = None,
        ids: Optional[IdGenerator] = None,
        clock: Optional[Clock] = None,
        settings: Optional[BillingSettings] = None,
        locks: Optional[DocumentLocks] = None,
    ) -> None:
        self.store = store if store is not None else InMemoryLedgerStore()
        # Without a directory, lead references are not checked.
        self.leads = leads
        self.ids = ids or UuidIdGenerator()
        self.clock = clock or SystemClock()
        self.settings = settings or load_billing_config()
        self.locks = locks or DocumentLocks()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self, name: str, document_id: str) -> Iterator[None]:
        try:
            yield
        except BillingError as exc:
            logger.warning("%s rejected for %s: %s %s", name, document_id, exc.code, exc.message)
            raise

    def _require_lead(self, lead_id: str) -> None:
        if self.leads is not None and not self.leads.lead_exists(lead_id):
            raise NotFoundError(f"Lead {lead_id} not found", details={"lead_id": lead_id})

    def _next_number(self, kind: str, now: datetime) -> str:
        prefix = self.settings.prefix_for(kind)
        seq = self.store.next_sequence(f"{prefix}-{now:%Y%m}")
        return format_document_number(prefix, now, seq)

    def _load_quotation(self, quotation_id: str) -> Quotation:
        quotation = self.store.get_quotation(quotation_id)
        if quotation is None:
            raise NotFoundError(f"Quotation {quotation_id} not found", details={"quotation_id": quotation_id})
        return quotation

    def _load_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.store.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})
        return invoice

    def _save_invoice(self, current: Invoice, updated: Invoice, **entries) -> Invoice:
        stored = updated.model_copy(update={"revision": current.revision + 1})
        self.store.save_invoice(stored, **entries)
        return stored

    # ------------------------------------------------------------------
    # quotations
    # ------------------------------------------------------------------

    def create_quotation(self, data: Payload) -> Quotation:
        request = parse_input(QuotationCreate, data)
        now = self.clock.now()
        quotation_id = self.ids.new_id("quotation")
        with self._operation("create_quotation", quotation_id), self.locks.hold(quotation_id):
            self._require_lead(request.lead_id)
            draft = quotations.build_quotation(
                request, quotation_id=quotation_id, number="", now=now, settings=self.settings
            )
            quotation = draft.model_copy(update={"number": self._next_number("quotation", now)})
            self.store.add_quotation(quotation)
        logger.info("Created quotation %s (%s) for lead %s", quotation.number, quotation.id, quotation.lead_id)
        return quotation

    def update_quotation(self, quotation_id: str, changes: Payload) -> Quotation:
        request = parse_input(QuotationUpdate, changes)
        with self._operation("update_quotation", quotation_id), self.locks.hold(quotation_id):
            current = self._load_quotation(quotation_id)
            updated = quotations.update_quotation(current, request, now=self.clock.now())
            self.store.save_quotation(updated)
        logger.info("Updated quotation %s, grand total %s", updated.number, updated.totals.grand_total)
        return updated

    def transition_quotation(self, quotation_id: str, target: str) -> Quotation:
        if target not in get_args(QuotationStatus):
            raise ValidationError(f"Unknown quotation status: {target}")
        with self._operation("transition_quotation", quotation_id), self.locks.hold(quotation_id):
            current = self._load_quotation(quotation_id)
            updated = quotations.transition_quotation(current, target, now=self.clock.now())
            self.store.save_quotation(updated)
        logger.info("Quotation %s moved %s -> %s", updated.number, current.status, updated.status)
        return updated

    def convert_quotation(self, quotation_id: str, request: Optional[Payload] = None) -> Invoice:
        conversion = parse_input(ConversionRequest, request or {})
        with self._operation("convert_quotation", quotation_id), self.locks.hold(quotation_id):
            quotation = self._load_quotation(quotation_id)
            now = self.clock.now()
            invoice_id = self.ids.new_id("invoice")
            invoice, converted = quotations.convert_to_invoice(
                quotation,
                conversion,
                invoice_id=invoice_id,
                number="",
                now=now,
                settings=self.settings,
            )
            kind = "proforma" if invoice.type == "proforma" else "invoice"
            invoice = invoice.model_copy(update={"number": self._next_number(kind, now)})
            self.store.add_invoice(invoice, converted_quotation=converted)
        logger.info("Converted quotation %s into invoice %s (%s)", quotation.number, invoice.number, invoice.id)
        return invoice

    def expire_quotations(self) -> List[Quotation]:
        """Move every sent quotation past its validity date to expired."""
        now = self.clock.now()
        expired: List[Quotation] = []
        for candidate in quotations.stale_quotations(self.store.list_quotations(), now):
            with self.locks.hold(candidate.id):
                current = self.store.get_quotation(candidate.id)
                if current is None or current.status != "sent" or current.valid_until >= now:
                    continue
                updated = current.model_copy(update={"status": "expired", "updated_at": now})
                self.store.save_quotation(updated)
            expired.append(updated)
        if expired:
            logger.info("Expired %d quotation(s)", len(expired))
        return expired

    def get_quotation(self, quotation_id: str) -> Quotation:
        return self._load_quotation(quotation_id)

    def list_quotations(self, lead_id: Optional[str] = None) -> List[Quotation]:
        return sorted(self.store.list_quotations(lead_id), key=lambda q: q.created_at)

    # ------------------------------------------------------------------
    # invoices
    # ------------------------------------------------------------------

    def create_invoice(self, data: Payload) -> Invoice:
        request = parse_input(InvoiceCreate, data)
        now = self.clock.now()
        invoice_id = self.ids.new_id("invoice")
        with self._operation("create_invoice", invoice_id), self.locks.hold(invoice_id):
            self._require_lead(request.lead_id)
            draft = invoices.build_invoice(request, invoice_id=invoice_id, number="", now=now, settings=self.settings)
            kind = "proforma" if draft.type == "proforma" else "invoice"
            invoice = draft.model_copy(update={"number": self._next_number(kind, now)})
            self.store.add_invoice(invoice)
        logger.info("Created invoice %s (%s) for lead %s", invoice.number, invoice.id, invoice.lead_id)
        return invoice

    def issue_invoice(self, invoice_id: str) -> Invoice:
        with self._operation("issue_invoice", invoice_id), self.locks.hold(invoice_id):
            current = self._load_invoice(invoice_id)
            updated = invoices.issue_invoice(current, now=self.clock.now())
            updated = self._save_invoice(current, updated)
        logger.info("Issued invoice %s, balance %s", updated.number, updated.balance)
        return updated

    def cancel_invoice(self, invoice_id: str, reason: Optional[str] = None) -> Invoice:
        with self._operation("cancel_invoice", invoice_id), self.locks.hold(invoice_id):
            current = self._load_invoice(invoice_id)
            updated = invoices.cancel_invoice(current, now=self.clock.now(), reason=reason)
            updated = self._save_invoice(current, updated)
        logger.info("Cancelled invoice %s", updated.number)
        return updated

    def get_invoice(self, invoice_id: str) -> Invoice:
        """Return the invoice with its overdue flag refreshed against the clock."""
        return invoices.recompute_balance(self._load_invoice(invoice_id), self.clock.now())

    def list_invoices(self, lead_id: Optional[str] = None) -> List[Invoice]:
        now = self.clock.now()
        rows = sorted(self.store.list_invoices(lead_id), key=lambda i: i.created_at)
        return [invoices.recompute_balance(invoice, now) for invoice in rows]

    # ------------------------------------------------------------------
    # ledgers
    # ------------------------------------------------------------------

    def record_payment(self, invoice_id: str, data: Payload) -> Payment:
        request = parse_input(PaymentCreate, data)
        with self._operation("record_payment", invoice_id), self.locks.hold(invoice_id):
            current = self._load_invoice(invoice_id)
            now = self.clock.now()
            payment, updated = payments.apply_payment(
                current,
                request,
                payment_id=self.ids.new_id("payment"),
                number="",
                now=now,
                tolerance=self.settings.payment_tolerance_minor,
            )
            payment = payment.model_copy(update={"number": self._next_number("payment", now)})
            updated = self._save_invoice(current, updated, payment=payment)
        logger.info(
            "Recorded %s %s on invoice %s: status %s, balance %s",
            payment.type,
            payment.amount,
            updated.number,
            updated.status,
            updated.balance,
        )
        return payment

    def issue_credit_note(self, invoice_id: str, data: Payload) -> CreditNote:
        request = parse_input(CreditNoteCreate, data)
        with self._operation("issue_credit_note", invoice_id), self.locks.hold(invoice_id):
            current = self._load_invoice(invoice_id)
            now = self.clock.now()
            note, updated = credit_notes.apply_credit_note(
                current,
                request,
                credit_note_id=self.ids.new_id("credit_note"),
                number="",
                now=now,
            )
            note = note.model_copy(update={"number": self._next_number("credit_note", now)})
            updated = self._save_invoice(current, updated, credit_note=note)
        logger.info(
            "Issued credit note %s for %s on invoice %s: status %s, balance %s",
            note.number,
            note.total_credit,
            updated.number,
            updated.status,
            updated.balance,
        )
        return note

    def list_payments(self, invoice_id: str) -> LedgerView:
        self._load_invoice(invoice_id)
        return LedgerView(self.store.list_payments(invoice_id))

    def list_credit_notes(self, invoice_id: str) -> LedgerView:
        self._load_invoice(invoice_id)
        return LedgerView(self.store.list_credit_notes(invoice_id))

    def get_payment(self, payment_id: str) -> Payment:
        payment = self.store.get_payment(payment_id)
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found", details={"payment_id": payment_id})
        return payment

    def get_credit_note(self, credit_note_id: str) -> CreditNote:
        note = self.store.get_credit_note(credit_note_id)
        if note is None:
            raise NotFoundError(f"Credit note {credit_note_id} not found", details={"credit_note_id": credit_note_id})
        return note

    # ------------------------------------------------------------------
    # calculators and rendering
    # ------------------------------------------------------------------

    def document_totals(
        self,
        items: Sequence[Payload],
        tax_rate: Number = 0,
        discount: Optional[Payload] = None,
        currency: Optional[str] = None,
    ) -> DocumentTotals:
        """Preview totals without creating a document."""
        parsed = [parse_input(LineItem, item) for item in items]
        parsed_discount = parse_input(Discount, discount) if discount is not None else None
        return compute_document_totals(parsed, tax_rate, parsed_discount, currency=currency)

    def render_invoice(self, invoice_id: str, renderer: DocumentRenderer) -> bytes:
        return renderer.render(self.get_invoice(invoice_id))

    def render_quotation(self, quotation_id: str, renderer: DocumentRenderer) -> bytes:
        return renderer.render(self.get_quotation(quotation_id))
