from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.types import JSON

from backend.db import Base

JSONType = JSON


class LeadORM(Base):
    __tablename__ = "leads"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class DocumentSequenceORM(Base):
    __tablename__ = "document_sequences"

    key = Column(String, primary_key=True)
    value = Column(Integer, nullable=False, default=0)


class QuotationORM(Base):
    __tablename__ = "quotations"

    id = Column(String, primary_key=True)
    number = Column(String, nullable=False, unique=True)
    lead_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)
    currency = Column(String(3), nullable=False)
    grand_total = Column(BigInteger, nullable=False)
    converted_invoice_id = Column(String, nullable=True)
    # full snapshot as produced by Quotation.model_dump(mode="json")
    document = Column(JSONType, nullable=False)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class InvoiceORM(Base):
    __tablename__ = "invoices"

    id = Column(String, primary_key=True)
    number = Column(String, nullable=False, unique=True)
    quotation_id = Column(String, ForeignKey("quotations.id"), nullable=True, index=True)
    lead_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)
    status = Column(String, nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    grand_total = Column(BigInteger, nullable=False)
    amount_paid = Column(BigInteger, nullable=False)
    amount_credited = Column(BigInteger, nullable=False)
    balance = Column(BigInteger, nullable=False)
    due_date = Column(Date, nullable=False)
    document = Column(JSONType, nullable=False)
    revision = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class PaymentORM(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True)
    invoice_id = Column(String, ForeignKey("invoices.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    number = Column(String, nullable=False, unique=True)
    type = Column(String, nullable=False)
    method = Column(String, nullable=False)
    amount = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    transaction_id = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    document = Column(JSONType, nullable=False)

    recorded_at = Column(DateTime, nullable=False)


class CreditNoteORM(Base):
    __tablename__ = "credit_notes"

    id = Column(String, primary_key=True)
    invoice_id = Column(String, ForeignKey("invoices.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    number = Column(String, nullable=False, unique=True)
    type = Column(String, nullable=False)
    total_credit = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    document = Column(JSONType, nullable=False)

    issued_at = Column(DateTime, nullable=False)
