from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import HTMLResponse

from backend.deps import BILLING_READ, BILLING_WRITE, get_engine, require_permission
from backend.rendering import HtmlDocumentRenderer
from backend.schemas import StatusChange
from billing.engine import BillingLedgerEngine
from billing.models import ConversionRequest, Invoice, Quotation, QuotationCreate, QuotationUpdate

router = APIRouter(prefix="/api/quotations", tags=["quotations"])

renderer = HtmlDocumentRenderer()


@router.post("", response_model=Quotation, status_code=status.HTTP_201_CREATED)
def create_quotation(
    payload: QuotationCreate,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_WRITE)),
) -> Quotation:
    return engine.create_quotation(payload)


@router.get("", response_model=List[Quotation])
def list_quotations(
    lead_id: Optional[str] = None,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> List[Quotation]:
    return engine.list_quotations(lead_id)


@router.post("/expire", response_model=List[Quotation])
def expire_quotations(
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_WRITE)),
) -> List[Quotation]:
    return engine.expire_quotations()


@router.get("/{quotation_id}", response_model=Quotation)
def get_quotation(
    quotation_id: str,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> Quotation:
    return engine.get_quotation(quotation_id)


@router.patch("/{quotation_id}", response_model=Quotation)
def update_quotation(
    quotation_id: str,
    payload: QuotationUpdate,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_WRITE)),
) -> Quotation:
    return engine.update_quotation(quotation_id, payload)


@router.post("/{quotation_id}/status", response_model=Quotation)
def change_status(
    quotation_id: str,
    payload: StatusChange,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_WRITE)),
) -> Quotation:
    return engine.transition_quotation(quotation_id, payload.status)


@router.post("/{quotation_id}/convert", response_model=Invoice, status_code=status.HTTP_201_CREATED)
def convert_quotation(
    quotation_id: str,
    payload: Optional[ConversionRequest] = None,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_WRITE)),
) -> Invoice:
    return engine.convert_quotation(quotation_id, payload)


@router.get("/{quotation_id}/document", response_class=HTMLResponse)
def quotation_document(
    quotation_id: str,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> HTMLResponse:
    body = engine.render_quotation(quotation_id, renderer)
    return HTMLResponse(content=body.decode("utf-8"))
