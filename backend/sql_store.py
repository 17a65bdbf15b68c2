"""SQLAlchemy-backed ledger store and lead directory."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.db import SessionLocal
from backend.db_models import (
    CreditNoteORM,
    DocumentSequenceORM,
    InvoiceORM,
    LeadORM,
    PaymentORM,
    QuotationORM,
)
from billing.errors import ConcurrentUpdateError, IdentifierCollisionError
from billing.models import CreditNote, Invoice, Payment, Quotation


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _quotation_row(quotation: Quotation, row: Optional[QuotationORM] = None) -> QuotationORM:
    row = row or QuotationORM(id=quotation.id, created_at=_naive_utc(quotation.created_at))
    row.number = quotation.number
    row.lead_id = quotation.lead_id
    row.status = quotation.status
    row.currency = quotation.currency
    row.grand_total = quotation.totals.grand_total.amount
    row.converted_invoice_id = quotation.converted_invoice_id
    row.document = quotation.model_dump(mode="json")
    row.updated_at = _naive_utc(quotation.updated_at)
    return row


def _invoice_values(invoice: Invoice) -> Dict[str, Any]:
    return {
        "number": invoice.number,
        "quotation_id": invoice.quotation_id,
        "lead_id": invoice.lead_id,
        "type": invoice.type,
        "status": invoice.status,
        "currency": invoice.currency,
        "grand_total": invoice.grand_total.amount,
        "amount_paid": invoice.amount_paid.amount,
        "amount_credited": invoice.amount_credited.amount,
        "balance": invoice.balance.amount,
        "due_date": invoice.due_date,
        "document": invoice.model_dump(mode="json"),
        "revision": invoice.revision,
        "updated_at": _naive_utc(invoice.updated_at),
    }


def _payment_row(payment: Payment, position: int) -> PaymentORM:
    return PaymentORM(
        id=payment.id,
        invoice_id=payment.invoice_id,
        position=position,
        number=payment.number,
        type=payment.type,
        method=payment.method,
        amount=payment.amount.amount,
        currency=payment.amount.currency,
        transaction_id=payment.transaction_id,
        notes=payment.notes,
        document=payment.model_dump(mode="json", exclude={"signed_amount"}),
        recorded_at=_naive_utc(payment.recorded_at),
    )


def _credit_note_row(note: CreditNote, position: int) -> CreditNoteORM:
    return CreditNoteORM(
        id=note.id,
        invoice_id=note.invoice_id,
        position=position,
        number=note.number,
        type=note.type,
        total_credit=note.total_credit.amount,
        currency=note.total_credit.currency,
        document=note.model_dump(mode="json"),
        issued_at=_naive_utc(note.issued_at),
    )


class SqlLedgerStore:
    """
    Ledger store on top of the app's SQLAlchemy session factory.

    Each write opens one session and commits once; ledger rows are only
    ever inserted.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory
        self._sequence_lock = threading.Lock()

    def next_sequence(self, key: str) -> int:
        with self._sequence_lock, self._session_factory() as db:
            row = db.query(DocumentSequenceORM).filter(DocumentSequenceORM.key == key).with_for_update().first()
            if row is None:
                row = DocumentSequenceORM(key=key, value=0)
                db.add(row)
            row.value += 1
            value = row.value
            db.commit()
            return value

    # quotations

    def get_quotation(self, quotation_id: str) -> Optional[Quotation]:
        with self._session_factory() as db:
            row = db.get(QuotationORM, quotation_id)
            return Quotation.model_validate(row.document) if row else None

    def list_quotations(self, lead_id: Optional[str] = None) -> List[Quotation]:
        with self._session_factory() as db:
            query = db.query(QuotationORM)
            if lead_id is not None:
                query = query.filter(QuotationORM.lead_id == lead_id)
            rows = query.order_by(QuotationORM.created_at).all()
            return [Quotation.model_validate(row.document) for row in rows]

    def add_quotation(self, quotation: Quotation) -> None:
        with self._session_factory() as db:
            if db.get(QuotationORM, quotation.id) is not None:
                raise IdentifierCollisionError(f"Quotation id {quotation.id} already exists")
            db.add(_quotation_row(quotation))
            db.commit()

    def save_quotation(self, quotation: Quotation) -> None:
        with self._session_factory() as db:
            row = db.get(QuotationORM, quotation.id)
            if row is None:
                raise KeyError(quotation.id)
            _quotation_row(quotation, row)
            db.commit()

    # invoices

    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        with self._session_factory() as db:
            row = db.get(InvoiceORM, invoice_id)
            return Invoice.model_validate(row.document) if row else None

    def list_invoices(self, lead_id: Optional[str] = None) -> List[Invoice]:
        with self._session_factory() as db:
            query = db.query(InvoiceORM)
            if lead_id is not None:
                query = query.filter(InvoiceORM.lead_id == lead_id)
            rows = query.order_by(InvoiceORM.created_at).all()
            return [Invoice.model_validate(row.document) for row in rows]

    def add_invoice(self, invoice: Invoice, converted_quotation: Optional[Quotation] = None) -> None:
        with self._session_factory() as db:
            if db.get(InvoiceORM, invoice.id) is not None:
                raise IdentifierCollisionError(f"Invoice id {invoice.id} already exists")
            if converted_quotation is not None:
                quotation_row = db.get(QuotationORM, converted_quotation.id)
                if quotation_row is None:
                    raise KeyError(converted_quotation.id)
                _quotation_row(converted_quotation, quotation_row)
            db.add(InvoiceORM(id=invoice.id, created_at=_naive_utc(invoice.created_at), **_invoice_values(invoice)))
            db.commit()

    def save_invoice(
        self,
        invoice: Invoice,
        payment: Optional[Payment] = None,
        credit_note: Optional[CreditNote] = None,
    ) -> None:
        with self._session_factory() as db:
            # compare-and-set on revision
            matched = (
                db.query(InvoiceORM)
                .filter(InvoiceORM.id == invoice.id, InvoiceORM.revision == invoice.revision - 1)
                .update(_invoice_values(invoice), synchronize_session=False)
            )
            if not matched:
                db.rollback()
                stored = db.query(InvoiceORM.revision).filter(InvoiceORM.id == invoice.id).scalar()
                if stored is None:
                    raise KeyError(invoice.id)
                raise ConcurrentUpdateError(
                    f"Invoice {invoice.number} was changed by another writer; reload and retry.",
                    details={"stored_revision": stored, "incoming_revision": invoice.revision},
                )
            if payment is not None:
                if db.get(PaymentORM, payment.id) is not None:
                    raise IdentifierCollisionError(f"Payment id {payment.id} already exists")
                position = db.query(func.count(PaymentORM.id)).filter(PaymentORM.invoice_id == invoice.id).scalar()
                db.add(_payment_row(payment, position))
            if credit_note is not None:
                if db.get(CreditNoteORM, credit_note.id) is not None:
                    raise IdentifierCollisionError(f"Credit note id {credit_note.id} already exists")
                position = (
                    db.query(func.count(CreditNoteORM.id)).filter(CreditNoteORM.invoice_id == invoice.id).scalar()
                )
                db.add(_credit_note_row(credit_note, position))
            db.commit()

    # ledger entries

    def list_payments(self, invoice_id: str) -> Tuple[Payment, ...]:
        with self._session_factory() as db:
            rows = (
                db.query(PaymentORM).filter(PaymentORM.invoice_id == invoice_id).order_by(PaymentORM.position).all()
            )
            return tuple(Payment.model_validate(row.document) for row in rows)

    def list_credit_notes(self, invoice_id: str) -> Tuple[CreditNote, ...]:
        with self._session_factory() as db:
            rows = (
                db.query(CreditNoteORM)
                .filter(CreditNoteORM.invoice_id == invoice_id)
                .order_by(CreditNoteORM.position)
                .all()
            )
            return tuple(CreditNote.model_validate(row.document) for row in rows)

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        with self._session_factory() as db:
            row = db.get(PaymentORM, payment_id)
            return Payment.model_validate(row.document) if row else None

    def get_credit_note(self, credit_note_id: str) -> Optional[CreditNote]:
        with self._session_factory() as db:
            row = db.get(CreditNoteORM, credit_note_id)
            return CreditNote.model_validate(row.document) if row else None


class SqlLeadDirectory:
    """Lead lookup against the leads table."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def lead_exists(self, lead_id: str) -> bool:
        with self._session_factory() as db:
            return db.get(LeadORM, lead_id) is not None
