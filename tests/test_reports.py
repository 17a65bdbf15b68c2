from datetime import datetime, timezone
from decimal import Decimal

import pytest

from billing.errors import ValidationError
from billing.reports import (
    aging_bucket,
    aging_report,
    collection_rate,
    financial_report,
    lead_billing_summary,
    overdue_invoices,
    payment_method_breakdown,
)
from conftest import CUSTOMER, item, usd


def _issued(engine, due_date, price="100.00", lead_id="lead-1"):
    invoice = engine.create_invoice(
        {
            "lead_id": lead_id,
            "customer": CUSTOMER,
            "currency": "USD",
            "items": [item(price=price)],
            "due_date": due_date,
        }
    )
    return engine.issue_invoice(invoice.id)


def test_aging_bucket_boundaries():
    assert [aging_bucket(d) for d in (0, 1, 30, 31, 60, 61, 90, 91)] == [
        "current",
        "1-30",
        "1-30",
        "31-60",
        "31-60",
        "61-90",
        "61-90",
        "over-90",
    ]


def test_overdue_invoices_oldest_first(engine, clock):
    late = _issued(engine, "2024-06-05")
    later = _issued(engine, "2024-06-02")
    _issued(engine, "2024-07-30")
    clock.set(datetime(2024, 6, 10, tzinfo=timezone.utc))
    rows = overdue_invoices(engine)
    assert [i.id for i in rows] == [later.id, late.id]
    assert rows[0].days_overdue == 8


def test_aging_report_buckets_outstanding(engine, clock):
    a = _issued(engine, "2024-06-02", price="100.00")
    b = _issued(engine, "2024-05-01", price="40.00")
    paid = _issued(engine, "2024-06-02", price="10.00")
    engine.record_payment(paid.id, {"amount": usd("10.00"), "method": "cash", "type": "full-payment"})
    engine.record_payment(a.id, {"amount": usd("25.00"), "method": "cash"})
    clock.set(datetime(2024, 7, 10, tzinfo=timezone.utc))

    report = aging_report(engine)
    by_id = {row.invoice_id: row for row in report.rows}
    assert set(by_id) == {a.id, b.id}
    assert by_id[a.id].bucket == "31-60"
    assert by_id[a.id].balance == 7500
    assert by_id[b.id].bucket == "61-90"
    assert report.totals["USD"]["31-60"] == 7500
    assert report.totals["USD"]["61-90"] == 4000
    assert report.rows[0].invoice_id == b.id


def test_lead_billing_summary(engine):
    quotation = engine.create_quotation({"lead_id": "lead-1", "currency": "USD", "items": [item(price="80.00")]})
    engine.transition_quotation(quotation.id, "sent")
    invoice = _issued(engine, "2024-06-30", price="200.00")
    engine.record_payment(invoice.id, {"amount": usd("120.00"), "method": "card"})
    engine.record_payment(invoice.id, {"amount": usd("20.00"), "method": "card", "type": "refund"})
    engine.issue_credit_note(
        invoice.id,
        {
            "type": "discount",
            "reason": "Loyalty discount applied late",
            "items": [{"description": "Loyalty", "original_amount": usd("200.00"), "credit_amount": usd("30.00")}],
        },
    )
    cancelled = engine.create_invoice(
        {"lead_id": "lead-1", "customer": CUSTOMER, "currency": "USD", "items": [item()], "due_date": "2024-06-30"}
    )
    engine.cancel_invoice(cancelled.id)
    _issued(engine, "2024-06-30", lead_id="lead-2")

    summary = lead_billing_summary(engine, "lead-1")
    row = summary.by_currency["USD"]
    assert summary.quotation_count == 1
    assert summary.invoice_count == 2
    assert summary.payment_count == 2
    assert summary.credit_note_count == 1
    assert row.quoted == 8000
    assert row.invoiced == 20000
    assert row.paid == 10000
    assert row.credited == 3000
    assert row.outstanding == 7000
    assert row.net_balance == 7000


def _june_activity(engine, clock):
    a = _issued(engine, "2024-06-30", price="100.00")
    engine.record_payment(a.id, {"amount": usd("60.00"), "method": "card"})
    engine.record_payment(a.id, {"amount": usd("10.00"), "method": "card", "type": "refund"})
    engine.record_payment(a.id, {"amount": usd("20.00"), "method": "cash"})
    b = _issued(engine, "2024-06-30", price="50.00")
    engine.issue_credit_note(
        b.id,
        {
            "type": "discount",
            "reason": "Late check-in goodwill",
            "items": [{"description": "Goodwill", "original_amount": usd("50.00"), "credit_amount": usd("5.00")}],
        },
    )
    cancelled = engine.create_invoice(
        {"lead_id": "lead-1", "customer": CUSTOMER, "currency": "USD", "items": [item()], "due_date": "2024-06-30"}
    )
    engine.cancel_invoice(cancelled.id)

    clock.set(datetime(2024, 7, 5, tzinfo=timezone.utc))
    july = _issued(engine, "2024-07-20", price="300.00")
    engine.record_payment(july.id, {"amount": usd("300.00"), "method": "bank-transfer", "type": "full-payment"})


def test_financial_report_for_period(engine, clock):
    _june_activity(engine, clock)
    report = financial_report(
        engine,
        datetime(2024, 6, 1, tzinfo=timezone.utc),
        datetime(2024, 6, 30, 23, 59, 59, tzinfo=timezone.utc),
    )
    row = report.by_currency["USD"]
    assert report.invoice_count == 3
    assert report.payment_count == 3
    assert report.credit_note_count == 1
    assert row.revenue == 15000
    assert row.collected == 7000
    assert row.refunded == 1000
    assert row.credited == 500
    assert row.outstanding == 7500
    assert row.collection_rate == Decimal("46.67")

    statuses = {(s.status, s.currency): (s.count, s.total) for s in report.status_breakdown}
    assert statuses == {("partially-paid", "USD"): (2, 15000), ("cancelled", "USD"): (1, 10000)}
    assert [(m.method, m.net) for m in report.method_breakdown] == [("card", 5000), ("cash", 2000)]


def test_financial_report_rejects_inverted_period(engine):
    with pytest.raises(ValidationError):
        financial_report(engine, datetime(2024, 7, 1, tzinfo=timezone.utc), datetime(2024, 6, 1, tzinfo=timezone.utc))


def test_payment_method_breakdown_all_time(engine, clock):
    _june_activity(engine, clock)
    rows = payment_method_breakdown(engine)
    assert [(r.method, r.count, r.received, r.refunded, r.net) for r in rows] == [
        ("bank-transfer", 1, 30000, 0, 30000),
        ("card", 2, 6000, 1000, 5000),
        ("cash", 1, 2000, 0, 2000),
    ]

    june_only = payment_method_breakdown(engine, end=datetime(2024, 6, 30, tzinfo=timezone.utc))
    assert [r.method for r in june_only] == ["card", "cash"]


def test_collection_rate_without_revenue_is_zero():
    assert collection_rate(500, 0) == 0
    assert collection_rate(19800, 19800) == Decimal("100")
