import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend import db_models
from backend.db import init_db, make_engine
from backend.sql_store import SqlLeadDirectory, SqlLedgerStore
from billing.engine import BillingLedgerEngine
from billing.errors import ConcurrentUpdateError, OverCreditError, OverpaymentError
from billing.interfaces import FixedClock, SequentialIdGenerator
from conftest import CUSTOMER, NOW, item, usd


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    with factory() as db:
        db.add(db_models.LeadORM(id="lead-1", name="Sunil Silva"))
        db.commit()
    yield factory
    engine.dispose()


@pytest.fixture
def sql_engine(session_factory):
    return BillingLedgerEngine(
        SqlLedgerStore(session_factory),
        leads=SqlLeadDirectory(session_factory),
        ids=SequentialIdGenerator(),
        clock=FixedClock(NOW),
    )


def _accepted_quotation(engine):
    quotation = engine.create_quotation(
        {
            "lead_id": "lead-1",
            "customer": CUSTOMER,
            "currency": "USD",
            "items": [item(quantity=2, price="100.00")],
            "tax_rate": "10",
            "discount": {"type": "fixed", "value": "20"},
        }
    )
    engine.transition_quotation(quotation.id, "sent")
    return engine.transition_quotation(quotation.id, "accepted")


def test_sequences_are_allocated_per_key(session_factory):
    store = SqlLedgerStore(session_factory)
    assert [store.next_sequence("INV-202406") for _ in range(3)] == [1, 2, 3]
    assert store.next_sequence("CN-202406") == 1


def test_sql_lead_directory(session_factory):
    leads = SqlLeadDirectory(session_factory)
    assert leads.lead_exists("lead-1")
    assert not leads.lead_exists("lead-9")


def test_quotation_round_trips_through_sql(sql_engine):
    quotation = _accepted_quotation(sql_engine)
    loaded = sql_engine.get_quotation(quotation.id)
    assert loaded.model_dump() == quotation.model_dump()
    assert loaded.valid_until.tzinfo is not None


def test_full_flow_on_sql_store(sql_engine, session_factory):
    quotation = _accepted_quotation(sql_engine)
    invoice = sql_engine.convert_quotation(quotation.id)
    assert sql_engine.get_quotation(quotation.id).converted_invoice_id == invoice.id

    sql_engine.issue_invoice(invoice.id)
    sql_engine.record_payment(invoice.id, {"amount": usd("50.00"), "method": "cash"})
    sql_engine.issue_credit_note(
        invoice.id,
        {
            "type": "discount",
            "reason": "Room upgrade not provided",
            "items": [{"description": "Upgrade", "original_amount": usd("148.00"), "credit_amount": usd("148.00")}],
        },
    )

    stored = sql_engine.get_invoice(invoice.id)
    assert stored.status == "paid"
    assert stored.balance.amount == 0
    with pytest.raises(OverpaymentError):
        sql_engine.record_payment(invoice.id, {"amount": usd("1.00"), "method": "cash"})

    with session_factory() as db:
        row = db.get(db_models.InvoiceORM, invoice.id)
        assert row.balance == 0
        assert row.amount_paid == 5000
        assert row.amount_credited == 14800
        assert db.query(db_models.PaymentORM).count() == 1
        assert db.query(db_models.CreditNoteORM).count() == 1


def test_rejected_credit_writes_nothing(sql_engine, session_factory):
    quotation = _accepted_quotation(sql_engine)
    invoice = sql_engine.issue_invoice(sql_engine.convert_quotation(quotation.id).id)
    with pytest.raises(OverCreditError):
        sql_engine.issue_credit_note(
            invoice.id,
            {
                "type": "other",
                "reason": "Crediting more than was billed",
                "items": [{"description": "All", "original_amount": usd("300.00"), "credit_amount": usd("250.00")}],
            },
        )
    assert sql_engine.get_invoice(invoice.id).amount_credited.amount == 0
    with session_factory() as db:
        assert db.query(db_models.CreditNoteORM).count() == 0


def test_payments_listed_in_insertion_order(sql_engine):
    quotation = _accepted_quotation(sql_engine)
    invoice = sql_engine.issue_invoice(sql_engine.convert_quotation(quotation.id).id)
    for amount in ("10.00", "20.00", "30.00"):
        sql_engine.record_payment(invoice.id, {"amount": usd(amount), "method": "card"})
    view = sql_engine.list_payments(invoice.id)
    assert [p.amount.amount for p in view] == [1000, 2000, 3000]
    assert [p.amount.amount for p in view] == [1000, 2000, 3000]
    assert sql_engine.get_payment(view[2].id).number == view[2].number


def test_write_based_on_stale_invoice_is_rejected(sql_engine, session_factory):
    quotation = _accepted_quotation(sql_engine)
    invoice = sql_engine.issue_invoice(sql_engine.convert_quotation(quotation.id).id)
    # a second worker sharing the database, with its own locks
    other = SqlLedgerStore(session_factory)
    stale = other.get_invoice(invoice.id)
    assert stale.revision == 1

    sql_engine.record_payment(invoice.id, {"amount": usd("50.00"), "method": "cash"})
    with pytest.raises(ConcurrentUpdateError):
        other.save_invoice(stale.model_copy(update={"revision": stale.revision + 1, "notes": "late write"}))

    current = sql_engine.get_invoice(invoice.id)
    assert current.amount_paid.amount == 5000
    assert current.notes is None
    assert current.revision == 2
    with session_factory() as db:
        assert db.get(db_models.InvoiceORM, invoice.id).revision == 2


def test_sqlite_enforces_ledger_foreign_keys(session_factory):
    with session_factory() as db:
        db.add(
            db_models.PaymentORM(
                id="payment_orphan",
                invoice_id="invoice_missing",
                position=0,
                number="REC-202406-99999",
                type="installment",
                method="cash",
                amount=100,
                currency="USD",
                document={},
                recorded_at=NOW.replace(tzinfo=None),
            )
        )
        with pytest.raises(IntegrityError):
            db.commit()
