"""Storage interface for the ledger plus the default in-memory implementation."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol, Tuple

from billing.errors import ConcurrentUpdateError, IdentifierCollisionError
from billing.models import CreditNote, Invoice, Payment, Quotation


class LedgerStore(Protocol):
    """
    Persistence seam used by the engine.

    Every write method is atomic: it either applies all of its arguments
    or raises without changing anything. Ledger entries are insert-only.
    save_invoice applies only when the stored revision is exactly one
    behind the incoming invoice, and raises ConcurrentUpdateError otherwise.
    """

    def next_sequence(self, key: str) -> int: ...

    def get_quotation(self, quotation_id: str) -> Optional[Quotation]: ...

    def list_quotations(self, lead_id: Optional[str] = None) -> List[Quotation]: ...

    def add_quotation(self, quotation: Quotation) -> None: ...

    def save_quotation(self, quotation: Quotation) -> None: ...

    def get_invoice(self, invoice_id: str) -> Optional[Invoice]: ...

    def list_invoices(self, lead_id: Optional[str] = None) -> List[Invoice]: ...

    def add_invoice(self, invoice: Invoice, converted_quotation: Optional[Quotation] = None) -> None: ...

    def save_invoice(
        self,
        invoice: Invoice,
        payment: Optional[Payment] = None,
        credit_note: Optional[CreditNote] = None,
    ) -> None: ...

    def list_payments(self, invoice_id: str) -> Tuple[Payment, ...]: ...

    def list_credit_notes(self, invoice_id: str) -> Tuple[CreditNote, ...]: ...

    def get_payment(self, payment_id: str) -> Optional[Payment]: ...

    def get_credit_note(self, credit_note_id: str) -> Optional[CreditNote]: ...


class InMemoryLedgerStore:
    """Dict-backed store. Records are frozen, so handing them out shares no mutable state."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sequences: Dict[str, int] = {}
        self._quotations: Dict[str, Quotation] = {}
        self._invoices: Dict[str, Invoice] = {}
        self._payments: Dict[str, Payment] = {}
        self._credit_notes: Dict[str, CreditNote] = {}
        self._payments_by_invoice: Dict[str, List[str]] = {}
        self._credit_notes_by_invoice: Dict[str, List[str]] = {}

    def next_sequence(self, key: str) -> int:
        with self._lock:
            value = self._sequences.get(key, 0) + 1
            self._sequences[key] = value
            return value

    # quotations

    def get_quotation(self, quotation_id: str) -> Optional[Quotation]:
        with self._lock:
            return self._quotations.get(quotation_id)

    def list_quotations(self, lead_id: Optional[str] = None) -> List[Quotation]:
        with self._lock:
            rows = list(self._quotations.values())
        return [q for q in rows if lead_id is None or q.lead_id == lead_id]

    def add_quotation(self, quotation: Quotation) -> None:
        with self._lock:
            if quotation.id in self._quotations:
                raise IdentifierCollisionError(f"Quotation id {quotation.id} already exists")
            self._quotations[quotation.id] = quotation

    def save_quotation(self, quotation: Quotation) -> None:
        with self._lock:
            if quotation.id not in self._quotations:
                raise KeyError(quotation.id)
            self._quotations[quotation.id] = quotation

    # invoices

    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        with self._lock:
            return self._invoices.get(invoice_id)

    def list_invoices(self, lead_id: Optional[str] = None) -> List[Invoice]:
        with self._lock:
            rows = list(self._invoices.values())
        return [i for i in rows if lead_id is None or i.lead_id == lead_id]

    def add_invoice(self, invoice: Invoice, converted_quotation: Optional[Quotation] = None) -> None:
        with self._lock:
            if invoice.id in self._invoices:
                raise IdentifierCollisionError(f"Invoice id {invoice.id} already exists")
            if converted_quotation is not None and converted_quotation.id not in self._quotations:
                raise KeyError(converted_quotation.id)
            self._invoices[invoice.id] = invoice
            self._payments_by_invoice[invoice.id] = []
            self._credit_notes_by_invoice[invoice.id] = []
            if converted_quotation is not None:
                self._quotations[converted_quotation.id] = converted_quotation

    def save_invoice(
        self,
        invoice: Invoice,
        payment: Optional[Payment] = None,
        credit_note: Optional[CreditNote] = None,
    ) -> None:
        with self._lock:
            if invoice.id not in self._invoices:
                raise KeyError(invoice.id)
            require_next_revision(self._invoices[invoice.id].revision, invoice)
            # check every id before touching anything
            if payment is not None and payment.id in self._payments:
                raise IdentifierCollisionError(f"Payment id {payment.id} already exists")
            if credit_note is not None and credit_note.id in self._credit_notes:
                raise IdentifierCollisionError(f"Credit note id {credit_note.id} already exists")
            if payment is not None:
                self._payments[payment.id] = payment
                self._payments_by_invoice[invoice.id].append(payment.id)
            if credit_note is not None:
                self._credit_notes[credit_note.id] = credit_note
                self._credit_notes_by_invoice[invoice.id].append(credit_note.id)
            self._invoices[invoice.id] = invoice

    # ledger entries

    def list_payments(self, invoice_id: str) -> Tuple[Payment, ...]:
        with self._lock:
            return tuple(self._payments[pid] for pid in self._payments_by_invoice.get(invoice_id, []))

    def list_credit_notes(self, invoice_id: str) -> Tuple[CreditNote, ...]:
        with self._lock:
            return tuple(self._credit_notes[cid] for cid in self._credit_notes_by_invoice.get(invoice_id, []))

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        with self._lock:
            return self._payments.get(payment_id)

    def get_credit_note(self, credit_note_id: str) -> Optional[CreditNote]:
        with self._lock:
            return self._credit_notes.get(credit_note_id)



def require_next_revision(stored_revision: int, incoming: Invoice) -> None:
    if stored_revision != incoming.revision - 1:
        raise ConcurrentUpdateError(
            f"Invoice {incoming.number} was changed by another writer; reload and retry.",
            details={"stored_revision": stored_revision, "incoming_revision": incoming.revision},
        )
