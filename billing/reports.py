"""Read-only billing reports built on engine snapshots."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from billing.engine import BillingLedgerEngine
from billing.errors import ValidationError
from billing.models import Invoice, as_utc
from billing.money import divide_half_up

QUOTED_STATUSES = ("sent", "accepted")
OPEN_STATUSES = ("issued", "partially-paid")
AGING_BUCKETS = ("current", "1-30", "31-60", "61-90", "over-90")


class CurrencySummary(BaseModel):
    currency: str
    quoted: int = 0
    invoiced: int = 0
    paid: int = 0
    credited: int = 0
    outstanding: int = 0
    net_balance: int = 0


class LeadBillingSummary(BaseModel):
    lead_id: str
    quotation_count: int = 0
    accepted_quotation_count: int = 0
    invoice_count: int = 0
    paid_invoice_count: int = 0
    overdue_invoice_count: int = 0
    payment_count: int = 0
    credit_note_count: int = 0
    by_currency: Dict[str, CurrencySummary] = Field(default_factory=dict)


class AgingRow(BaseModel):
    invoice_id: str
    number: str
    lead_id: str
    currency: str
    balance: int
    days_overdue: int
    bucket: str


class AgingReport(BaseModel):
    rows: List[AgingRow] = Field(default_factory=list)
    # currency -> bucket -> outstanding minor units
    totals: Dict[str, Dict[str, int]] = Field(default_factory=dict)


class MethodTotal(BaseModel):
    method: str
    currency: str
    count: int = 0
    received: int = 0
    refunded: int = 0
    net: int = 0


class StatusTotal(BaseModel):
    status: str
    currency: str
    count: int = 0
    total: int = 0


class FinancialSummary(BaseModel):
    currency: str
    revenue: int = 0
    collected: int = 0
    refunded: int = 0
    credited: int = 0
    outstanding: int = 0
    collection_rate: Decimal = Decimal("0")


class FinancialReport(BaseModel):
    start: datetime
    end: datetime
    invoice_count: int = 0
    payment_count: int = 0
    credit_note_count: int = 0
    by_currency: Dict[str, FinancialSummary] = Field(default_factory=dict)
    status_breakdown: List[StatusTotal] = Field(default_factory=list)
    method_breakdown: List[MethodTotal] = Field(default_factory=list)


def aging_bucket(days_overdue: int) -> str:
    if days_overdue <= 0:
        return "current"
    if days_overdue <= 30:
        return "1-30"
    if days_overdue <= 60:
        return "31-60"
    if days_overdue <= 90:
        return "61-90"
    return "over-90"


def lead_billing_summary(engine: BillingLedgerEngine, lead_id: str) -> LeadBillingSummary:
    """Totals per currency; net_balance = invoiced - paid - credited."""
    summary = LeadBillingSummary(lead_id=lead_id)

    def bucket(currency: str) -> CurrencySummary:
        if currency not in summary.by_currency:
            summary.by_currency[currency] = CurrencySummary(currency=currency)
        return summary.by_currency[currency]

    for quotation in engine.list_quotations(lead_id):
        summary.quotation_count += 1
        if quotation.status == "accepted":
            summary.accepted_quotation_count += 1
        if quotation.status in QUOTED_STATUSES:
            bucket(quotation.currency).quoted += quotation.totals.grand_total.amount

    for invoice in engine.list_invoices(lead_id):
        summary.invoice_count += 1
        payments = engine.list_payments(invoice.id)
        notes = engine.list_credit_notes(invoice.id)
        summary.payment_count += len(payments)
        summary.credit_note_count += len(notes)
        if invoice.status == "cancelled":
            continue
        if invoice.status == "paid":
            summary.paid_invoice_count += 1
        if invoice.is_overdue:
            summary.overdue_invoice_count += 1
        row = bucket(invoice.currency)
        row.invoiced += invoice.grand_total.amount
        row.paid += sum(payment.signed_amount.amount for payment in payments)
        row.credited += sum(note.total_credit.amount for note in notes)
        if invoice.status in OPEN_STATUSES:
            row.outstanding += invoice.balance.amount

    for row in summary.by_currency.values():
        row.net_balance = row.invoiced - row.paid - row.credited
    return summary


def overdue_invoices(engine: BillingLedgerEngine, lead_id: Optional[str] = None) -> List[Invoice]:
    """Overdue invoices, oldest due date first."""
    rows = [invoice for invoice in engine.list_invoices(lead_id) if invoice.is_overdue]
    return sorted(rows, key=lambda invoice: (invoice.due_date, invoice.number))


def aging_report(engine: BillingLedgerEngine) -> AgingReport:
    report = AgingReport()
    for invoice in engine.list_invoices():
        if invoice.status not in OPEN_STATUSES or not invoice.balance.is_positive():
            continue
        name = aging_bucket(invoice.days_overdue)
        report.rows.append(
            AgingRow(
                invoice_id=invoice.id,
                number=invoice.number,
                lead_id=invoice.lead_id,
                currency=invoice.currency,
                balance=invoice.balance.amount,
                days_overdue=invoice.days_overdue,
                bucket=name,
            )
        )
        totals = report.totals.setdefault(invoice.currency, {key: 0 for key in AGING_BUCKETS})
        totals[name] += invoice.balance.amount
    report.rows.sort(key=lambda row: (-row.days_overdue, row.number))
    return report


def _window(start: Optional[datetime], end: Optional[datetime]) -> Tuple[Optional[datetime], Optional[datetime]]:
    start, end = as_utc(start), as_utc(end)
    if start is not None and end is not None and start > end:
        raise ValidationError(
            "Report start must not be after its end.",
            details={"start": start.isoformat(), "end": end.isoformat()},
        )
    return start, end


def _within(moment: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    moment = as_utc(moment)
    return (start is None or moment >= start) and (end is None or moment <= end)


def collection_rate(collected: int, revenue: int) -> Decimal:
    """Collected as a percentage of revenue, two decimal places, half-up."""
    if revenue <= 0:
        return Decimal("0")
    return Decimal(divide_half_up(collected * 10000, revenue)).scaleb(-2)


def payment_method_breakdown(
    engine: BillingLedgerEngine,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[MethodTotal]:
    """
    Payments grouped by method and currency, largest net amount first.

    Payments are selected by payment_date; both bounds are inclusive and
    either may be omitted. Refunds count against the method they were
    paid out through.
    """
    start, end = _window(start, end)
    rows: Dict[Tuple[str, str], MethodTotal] = {}
    for invoice in engine.list_invoices():
        for payment in engine.list_payments(invoice.id):
            if not _within(payment.payment_date, start, end):
                continue
            key = (payment.method, payment.amount.currency)
            row = rows.setdefault(key, MethodTotal(method=payment.method, currency=payment.amount.currency))
            row.count += 1
            if payment.type == "refund":
                row.refunded += payment.amount.amount
            else:
                row.received += payment.amount.amount
            row.net += payment.signed_amount.amount
    return sorted(rows.values(), key=lambda row: (-row.net, row.currency, row.method))


def financial_report(engine: BillingLedgerEngine, start: datetime, end: datetime) -> FinancialReport:
    """
    Revenue and collections for a period.

    Invoices are selected by created_at, payments by payment_date and
    credit notes by issued_at. Revenue excludes cancelled invoices;
    collected is net of refunds.
    """
    start, end = _window(start, end)
    report = FinancialReport(start=start, end=end)
    statuses: Dict[Tuple[str, str], StatusTotal] = {}

    def summary(currency: str) -> FinancialSummary:
        if currency not in report.by_currency:
            report.by_currency[currency] = FinancialSummary(currency=currency)
        return report.by_currency[currency]

    for invoice in engine.list_invoices():
        if _within(invoice.created_at, start, end):
            report.invoice_count += 1
            key = (invoice.status, invoice.currency)
            status_row = statuses.setdefault(key, StatusTotal(status=invoice.status, currency=invoice.currency))
            status_row.count += 1
            status_row.total += invoice.grand_total.amount
            if invoice.status != "cancelled":
                row = summary(invoice.currency)
                row.revenue += invoice.grand_total.amount
                if invoice.status in OPEN_STATUSES:
                    row.outstanding += invoice.balance.amount

        for payment in engine.list_payments(invoice.id):
            if not _within(payment.payment_date, start, end):
                continue
            report.payment_count += 1
            row = summary(payment.amount.currency)
            row.collected += payment.signed_amount.amount
            if payment.type == "refund":
                row.refunded += payment.amount.amount

        for note in engine.list_credit_notes(invoice.id):
            if not _within(note.issued_at, start, end):
                continue
            report.credit_note_count += 1
            summary(note.total_credit.currency).credited += note.total_credit.amount

    for row in report.by_currency.values():
        row.collection_rate = collection_rate(row.collected, row.revenue)
    report.status_breakdown = sorted(statuses.values(), key=lambda row: (row.currency, row.status))
    report.method_breakdown = payment_method_breakdown(engine, start, end)
    return report
