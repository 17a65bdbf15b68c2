from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import HTMLResponse

from backend.deps import BILLING_CANCEL, BILLING_READ, BILLING_WRITE, get_engine, require_permission
from backend.rendering import HtmlDocumentRenderer
from backend.schemas import CancelRequest
from billing.engine import BillingLedgerEngine
from billing.models import CreditNote, CreditNoteCreate, Invoice, InvoiceCreate, Payment, PaymentCreate
from billing.reports import overdue_invoices

router = APIRouter(prefix="/api/invoices", tags=["invoices"])

renderer = HtmlDocumentRenderer()


@router.post("", response_model=Invoice, status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: InvoiceCreate,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_WRITE)),
) -> Invoice:
    return engine.create_invoice(payload)


@router.get("", response_model=List[Invoice])
def list_invoices(
    lead_id: Optional[str] = None,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> List[Invoice]:
    return engine.list_invoices(lead_id)


@router.get("/overdue", response_model=List[Invoice])
def list_overdue(
    lead_id: Optional[str] = None,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> List[Invoice]:
    return overdue_invoices(engine, lead_id)


@router.get("/{invoice_id}", response_model=Invoice)
def get_invoice(
    invoice_id: str,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> Invoice:
    return engine.get_invoice(invoice_id)


@router.post("/{invoice_id}/issue", response_model=Invoice)
def issue_invoice(
    invoice_id: str,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_WRITE)),
) -> Invoice:
    return engine.issue_invoice(invoice_id)


@router.post("/{invoice_id}/cancel", response_model=Invoice)
def cancel_invoice(
    invoice_id: str,
    payload: Optional[CancelRequest] = None,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_CANCEL)),
) -> Invoice:
    reason = payload.reason if payload else None
    return engine.cancel_invoice(invoice_id, reason)


@router.get("/{invoice_id}/payments", response_model=List[Payment])
def list_payments(
    invoice_id: str,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> List[Payment]:
    return list(engine.list_payments(invoice_id))


@router.post("/{invoice_id}/payments", response_model=Payment, status_code=status.HTTP_201_CREATED)
def record_payment(
    invoice_id: str,
    payload: PaymentCreate,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_WRITE)),
) -> Payment:
    return engine.record_payment(invoice_id, payload)


@router.get("/{invoice_id}/credit-notes", response_model=List[CreditNote])
def list_credit_notes(
    invoice_id: str,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> List[CreditNote]:
    return list(engine.list_credit_notes(invoice_id))


@router.post("/{invoice_id}/credit-notes", response_model=CreditNote, status_code=status.HTTP_201_CREATED)
def issue_credit_note(
    invoice_id: str,
    payload: CreditNoteCreate,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_WRITE)),
) -> CreditNote:
    return engine.issue_credit_note(invoice_id, payload)


@router.get("/{invoice_id}/document", response_class=HTMLResponse)
def invoice_document(
    invoice_id: str,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> HTMLResponse:
    body = engine.render_invoice(invoice_id, renderer)
    return HTMLResponse(content=body.decode("utf-8"))
