from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from backend.deps import BILLING_READ, get_engine, require_permission
from backend.schemas import TotalsPreviewRequest
from billing.engine import BillingLedgerEngine
from billing.models import DocumentTotals
from billing.reports import (
    AgingReport,
    FinancialReport,
    LeadBillingSummary,
    MethodTotal,
    aging_report,
    financial_report,
    lead_billing_summary,
    payment_method_breakdown,
)

router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.get("/leads/{lead_id}/summary", response_model=LeadBillingSummary)
def lead_summary(
    lead_id: str,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> LeadBillingSummary:
    return lead_billing_summary(engine, lead_id)


@router.get("/aging", response_model=AgingReport)
def aging(
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> AgingReport:
    return aging_report(engine)


@router.post("/totals", response_model=DocumentTotals)
def preview_totals(
    payload: TotalsPreviewRequest,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> DocumentTotals:
    return engine.document_totals(payload.items, payload.tax_rate, payload.discount, payload.currency)


@router.get("/reports", response_model=FinancialReport)
def financial(
    start: datetime = Query(..., description="Inclusive period start (ISO 8601)"),
    end: datetime = Query(..., description="Inclusive period end (ISO 8601)"),
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> FinancialReport:
    return financial_report(engine, start, end)


@router.get("/reports/payment-methods", response_model=List[MethodTotal])
def payment_methods(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    engine: BillingLedgerEngine = Depends(get_engine),
    _: dict = Depends(require_permission(BILLING_READ)),
) -> List[MethodTotal]:
    return payment_method_breakdown(engine, start, end)
