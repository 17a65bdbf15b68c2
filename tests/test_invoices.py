from datetime import date, datetime, timezone

import pytest

from billing.errors import InvalidTransitionError, NotFoundError, ValidationError
from billing.invoices import recompute_balance
from billing.money import Money
from conftest import CUSTOMER, NOW, item, usd


def _invoice_payload(**overrides):
    payload = {
        "lead_id": "lead-1",
        "customer": CUSTOMER,
        "currency": "USD",
        "items": [item(quantity=2, price="100.00")],
        "tax_rate": "10",
        "discount": {"type": "fixed", "value": "20"},
        "due_date": "2024-06-15",
    }
    payload.update(overrides)
    return payload


def test_create_invoice_is_draft(engine):
    invoice = engine.create_invoice(_invoice_payload())
    assert invoice.status == "draft"
    assert invoice.number == "INV-202406-00001"
    assert invoice.grand_total.amount == 19800
    assert invoice.balance.amount == 19800
    assert invoice.issued_at is None


def test_create_invoice_requires_full_customer(engine):
    with pytest.raises(ValidationError):
        engine.create_invoice(_invoice_payload(customer={"name": "Nimal Perera", "email": "n@example.com"}))


def test_create_invoice_requires_known_lead(engine):
    with pytest.raises(NotFoundError):
        engine.create_invoice(_invoice_payload(lead_id="nobody"))


def test_create_invoice_default_due_date(engine):
    payload = _invoice_payload()
    payload.pop("due_date")
    invoice = engine.create_invoice(payload)
    assert invoice.due_date == date(2024, 6, 16)


def test_unknown_enum_values_rejected_at_boundary(engine):
    with pytest.raises(ValidationError):
        engine.create_invoice(_invoice_payload(type="receipt"))
    with pytest.raises(ValidationError):
        engine.create_invoice(_invoice_payload(discount={"type": "bogo", "value": "1"}))


def test_issue_invoice(engine):
    invoice = engine.create_invoice(_invoice_payload())
    issued = engine.issue_invoice(invoice.id)
    assert issued.status == "issued"
    assert issued.issued_at == NOW
    with pytest.raises(InvalidTransitionError):
        engine.issue_invoice(invoice.id)


def test_cancel_draft_invoice(engine):
    invoice = engine.create_invoice(_invoice_payload())
    cancelled = engine.cancel_invoice(invoice.id, "Customer changed plans")
    assert cancelled.status == "cancelled"
    assert cancelled.cancellation_reason == "Customer changed plans"
    with pytest.raises(InvalidTransitionError):
        engine.cancel_invoice(invoice.id)
    with pytest.raises(InvalidTransitionError):
        engine.issue_invoice(invoice.id)


def test_cancel_with_outstanding_balance_fails(engine, issued_invoice):
    with pytest.raises(InvalidTransitionError):
        engine.cancel_invoice(issued_invoice.id)
    assert engine.get_invoice(issued_invoice.id).status == "issued"


def test_cancel_after_full_credit(engine, issued_invoice):
    engine.issue_credit_note(
        issued_invoice.id,
        {
            "type": "cancellation",
            "reason": "Tour cancelled by operator",
            "items": [{"description": "Full tour", "original_amount": usd("198.00"), "credit_amount": usd("198.00")}],
        },
    )
    cancelled = engine.cancel_invoice(issued_invoice.id, "Tour cancelled")
    assert cancelled.status == "cancelled"
    assert cancelled.balance.amount == 0


def test_cancel_paid_invoice_fails(engine, issued_invoice):
    engine.record_payment(issued_invoice.id, {"amount": usd("198.00"), "method": "card", "type": "full-payment"})
    with pytest.raises(InvalidTransitionError):
        engine.cancel_invoice(issued_invoice.id)


def test_overdue_is_a_derived_flag(engine, clock, issued_invoice):
    assert engine.get_invoice(issued_invoice.id).is_overdue is False
    clock.set(datetime(2024, 6, 20, 12, tzinfo=timezone.utc))
    engine.record_payment(issued_invoice.id, {"amount": usd("50.00"), "method": "cash"})
    invoice = engine.get_invoice(issued_invoice.id)
    assert invoice.status == "partially-paid"
    assert invoice.is_overdue is True
    assert invoice.days_overdue == 5


def test_due_date_itself_is_not_overdue(engine, clock, issued_invoice):
    clock.set(datetime(2024, 6, 15, 23, 59, tzinfo=timezone.utc))
    assert engine.get_invoice(issued_invoice.id).is_overdue is False


def test_paid_invoice_is_never_overdue(engine, clock, issued_invoice):
    engine.record_payment(issued_invoice.id, {"amount": usd("198.00"), "method": "card", "type": "full-payment"})
    clock.set(datetime(2024, 9, 1, tzinfo=timezone.utc))
    invoice = engine.get_invoice(issued_invoice.id)
    assert invoice.status == "paid"
    assert invoice.is_overdue is False


def test_recompute_balance_keeps_invariant(issued_invoice):
    paid = issued_invoice.model_copy(update={"amount_paid": Money(amount=5000, currency="USD")})
    credited = paid.model_copy(update={"amount_credited": Money(amount=14800, currency="USD")})
    first = recompute_balance(paid, NOW)
    assert first.balance.amount == 14800
    assert first.status == "partially-paid"
    second = recompute_balance(credited, NOW)
    assert second.balance.amount == 0
    assert second.status == "paid"
    assert second.paid_at == NOW


def test_recompute_balance_does_not_touch_draft(engine):
    draft = engine.create_invoice(_invoice_payload())
    assert recompute_balance(draft, NOW).status == "draft"


def test_list_invoices_by_lead(engine):
    engine.create_invoice(_invoice_payload())
    engine.create_invoice(_invoice_payload(lead_id="lead-2"))
    assert len(engine.list_invoices()) == 2
    assert [i.lead_id for i in engine.list_invoices("lead-2")] == ["lead-2"]


def test_unknown_invoice(engine):
    with pytest.raises(NotFoundError):
        engine.get_invoice("invoice_404")
    with pytest.raises(NotFoundError):
        engine.issue_invoice("invoice_404")
