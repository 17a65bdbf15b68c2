from datetime import timedelta

import pytest

from billing.errors import (
    ImmutableDocumentError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from conftest import CUSTOMER, NOW, item


def _quotation(engine, **overrides):
    payload = {
        "lead_id": "lead-1",
        "customer": CUSTOMER,
        "currency": "USD",
        "items": [item(quantity=2, price="100.00")],
        "tax_rate": "10",
        "discount": {"type": "fixed", "value": "20"},
    }
    payload.update(overrides)
    return engine.create_quotation(payload)


def test_create_quotation_defaults(engine):
    quotation = _quotation(engine)
    assert quotation.status == "draft"
    assert quotation.number == "QT-202406-00001"
    assert quotation.valid_until == NOW + timedelta(days=30)
    assert quotation.totals.grand_total.amount == 19800
    assert quotation.customer.email == "nimal@example.com"


def test_create_quotation_requires_known_lead(engine):
    with pytest.raises(NotFoundError):
        _quotation(engine, lead_id="lead-unknown")


def test_create_quotation_customer_is_optional_but_validated(engine):
    assert _quotation(engine, customer=None).customer is None
    with pytest.raises(ValidationError):
        _quotation(engine, customer={"name": "A"})
    with pytest.raises(ValidationError):
        _quotation(engine, customer={"name": "Nimal", "phone": "call me maybe"})
    with pytest.raises(ValidationError):
        _quotation(engine, customer={"email": "not-an-email"})


def test_create_quotation_rejects_past_validity(engine):
    with pytest.raises(ValidationError):
        _quotation(engine, valid_until=(NOW - timedelta(days=1)).isoformat())


def test_create_quotation_rejects_unknown_currency(engine):
    with pytest.raises(ValidationError):
        _quotation(engine, currency="XYZ", items=[{"description": "Hotel", "quantity": 1, "unit_price": {"amount": 1, "currency": "XYZ"}}])


def test_create_quotation_rejects_empty_items(engine):
    with pytest.raises(ValidationError):
        _quotation(engine, items=[])


def test_quotation_cannot_skip_sent(engine):
    quotation = _quotation(engine)
    for target in ("accepted", "expired", "rejected"):
        with pytest.raises(InvalidTransitionError):
            engine.transition_quotation(quotation.id, target)
    assert engine.get_quotation(quotation.id).status == "draft"


def test_quotation_happy_path_and_terminal_states(engine):
    quotation = _quotation(engine)
    engine.transition_quotation(quotation.id, "sent")
    accepted = engine.transition_quotation(quotation.id, "accepted")
    assert accepted.status == "accepted"
    with pytest.raises(InvalidTransitionError):
        engine.transition_quotation(quotation.id, "rejected")
    with pytest.raises(ImmutableDocumentError):
        engine.update_quotation(quotation.id, {"tax_rate": "5"})


def test_unknown_status_is_a_validation_error(engine):
    quotation = _quotation(engine)
    with pytest.raises(ValidationError):
        engine.transition_quotation(quotation.id, "won")


def test_accepting_after_validity_fails(engine, clock):
    quotation = _quotation(engine)
    engine.transition_quotation(quotation.id, "sent")
    clock.advance(days=31)
    with pytest.raises(InvalidTransitionError):
        engine.transition_quotation(quotation.id, "accepted")


def test_update_recomputes_totals(engine):
    quotation = _quotation(engine)
    updated = engine.update_quotation(
        quotation.id,
        {"items": [item(quantity=1, price="50.00")], "discount": {"type": "none", "value": "0"}},
    )
    assert updated.totals.subtotal.amount == 5000
    assert updated.totals.grand_total.amount == 5500
    assert updated.customer == quotation.customer


def test_update_with_bad_items_leaves_quotation_unchanged(engine):
    quotation = _quotation(engine)
    with pytest.raises(ValidationError):
        engine.update_quotation(quotation.id, {"items": [item(quantity=0)]})
    assert engine.get_quotation(quotation.id) == quotation


def test_convert_accepted_quotation(engine):
    quotation = _quotation(engine)
    engine.transition_quotation(quotation.id, "sent")
    engine.transition_quotation(quotation.id, "accepted")
    invoice = engine.convert_quotation(quotation.id)

    assert invoice.grand_total.amount == 19800
    assert invoice.status == "draft"
    assert invoice.amount_paid.amount == 0
    assert invoice.amount_credited.amount == 0
    assert invoice.balance == invoice.grand_total
    assert invoice.quotation_id == quotation.id
    assert invoice.number == "INV-202406-00001"
    assert invoice.due_date == (NOW + timedelta(days=15)).date()
    assert engine.get_quotation(quotation.id).converted_invoice_id == invoice.id


def test_convert_only_once(engine):
    quotation = _quotation(engine)
    engine.transition_quotation(quotation.id, "sent")
    engine.transition_quotation(quotation.id, "accepted")
    engine.convert_quotation(quotation.id)
    with pytest.raises(InvalidTransitionError):
        engine.convert_quotation(quotation.id)
    assert len(engine.list_invoices()) == 1


def test_convert_requires_accepted(engine):
    quotation = _quotation(engine)
    engine.transition_quotation(quotation.id, "sent")
    with pytest.raises(InvalidTransitionError):
        engine.convert_quotation(quotation.id)


def test_convert_requires_full_customer(engine):
    quotation = _quotation(engine, customer={"name": "Nimal Perera"})
    engine.transition_quotation(quotation.id, "sent")
    engine.transition_quotation(quotation.id, "accepted")
    with pytest.raises(ValidationError):
        engine.convert_quotation(quotation.id)
    assert engine.list_invoices() == []


def test_convert_to_proforma_uses_proforma_prefix(engine):
    quotation = _quotation(engine)
    engine.transition_quotation(quotation.id, "sent")
    engine.transition_quotation(quotation.id, "accepted")
    invoice = engine.convert_quotation(quotation.id, {"type": "proforma", "due_date": "2024-07-01"})
    assert invoice.number.startswith("PI-202406-")
    assert invoice.due_date.isoformat() == "2024-07-01"


def test_expire_quotations_moves_stale_sent(engine, clock):
    stale = _quotation(engine)
    draft = _quotation(engine)
    engine.transition_quotation(stale.id, "sent")
    clock.advance(days=31)
    fresh = _quotation(engine)
    engine.transition_quotation(fresh.id, "sent")

    expired = engine.expire_quotations()
    assert [q.id for q in expired] == [stale.id]
    assert engine.get_quotation(stale.id).status == "expired"
    assert engine.get_quotation(draft.id).status == "draft"
    assert engine.get_quotation(fresh.id).status == "sent"


def test_list_quotations_by_lead(engine):
    _quotation(engine)
    _quotation(engine, lead_id="lead-2")
    assert len(engine.list_quotations()) == 2
    assert [q.lead_id for q in engine.list_quotations("lead-2")] == ["lead-2"]


def test_unknown_quotation(engine):
    with pytest.raises(NotFoundError):
        engine.get_quotation("quotation_404")
