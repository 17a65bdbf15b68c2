from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator

from billing.money import Money

DiscountType = Literal["none", "percentage", "fixed"]
QuotationStatus = Literal["draft", "sent", "accepted", "expired", "rejected"]
InvoiceStatus = Literal["draft", "issued", "partially-paid", "paid", "cancelled"]
InvoiceType = Literal["invoice", "proforma", "tax-invoice", "commercial-invoice"]
PaymentMethod = Literal["cash", "card", "bank-transfer", "online", "cheque", "upi", "wallet", "other"]
PaymentType = Literal["advance", "installment", "full-payment", "final-payment", "refund"]
CreditNoteType = Literal[
    "refund",
    "cancellation",
    "discount",
    "error-correction",
    "service-not-provided",
    "quality-issue",
    "other",
]
ItemCategory = Literal[
    "accommodation",
    "transportation",
    "activity",
    "food",
    "guide",
    "insurance",
    "visa",
    "package",
    "other",
]


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so comparisons with the clock never mix kinds."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Record(BaseModel):
    """Immutable snapshot; changes are made with model_copy(update=...)."""

    model_config = ConfigDict(frozen=True)


class Customer(Record):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("name", "phone", "address")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("email")
    @classmethod
    def _lower(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value

    def is_complete(self) -> bool:
        return bool(self.name and self.email and self.phone)


class LineItem(Record):
    description: str
    quantity: int
    unit_price: Money
    category: ItemCategory = "other"
    total_price: Optional[Money] = None
    notes: Optional[str] = None


class Discount(Record):
    type: DiscountType = "none"
    value: Decimal = Decimal("0")


class DocumentTotals(Record):
    subtotal: Money
    discount_amount: Money
    tax_amount: Money
    grand_total: Money


class Quotation(Record):
    id: str
    number: str
    lead_id: str
    customer: Optional[Customer] = None
    currency: str
    items: Tuple[LineItem, ...]
    tax_rate: Decimal
    discount: Discount
    valid_until: datetime
    status: QuotationStatus = "draft"
    totals: DocumentTotals
    converted_invoice_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Invoice(Record):
    id: str
    number: str
    quotation_id: Optional[str] = None
    lead_id: str
    customer: Customer
    type: InvoiceType = "invoice"
    currency: str
    items: Tuple[LineItem, ...]
    tax_rate: Decimal
    discount: Discount
    totals: DocumentTotals
    due_date: date
    grand_total: Money
    amount_paid: Money
    amount_credited: Money
    balance: Money
    status: InvoiceStatus = "draft"
    is_overdue: bool = False
    days_overdue: int = 0
    notes: Optional[str] = None
    issued_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    # bumped on every save; stores reject writes based on a stale read
    revision: int = 0


class Payment(Record):
    id: str
    number: str
    invoice_id: str
    amount: Money
    method: PaymentMethod
    type: PaymentType = "installment"
    payment_date: datetime
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    recorded_at: datetime

    @computed_field  # type: ignore[misc]
    @property
    def signed_amount(self) -> Money:
        # refunds reduce amount_paid
        return self.amount.negate() if self.type == "refund" else self.amount


class CreditNoteItem(Record):
    description: str
    original_amount: Money
    credit_amount: Money


class CreditNote(Record):
    id: str
    number: str
    invoice_id: str
    type: CreditNoteType
    reason: str
    items: Tuple[CreditNoteItem, ...]
    total_credit: Money
    issued_at: datetime


# ---------------------------------------------------------------------------
# Inputs accepted by the engine. Enumerations are closed here so unknown
# values are rejected before any business rule runs.
# ---------------------------------------------------------------------------


class QuotationCreate(BaseModel):
    lead_id: str
    customer: Optional[Customer] = None
    currency: Optional[str] = None
    items: List[LineItem] = Field(default_factory=list)
    tax_rate: Decimal = Decimal("0")
    discount: Discount = Field(default_factory=Discount)
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("valid_until")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class QuotationUpdate(BaseModel):
    customer: Optional[Customer] = None
    items: Optional[List[LineItem]] = None
    tax_rate: Optional[Decimal] = None
    discount: Optional[Discount] = None
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("valid_until")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class InvoiceCreate(BaseModel):
    lead_id: str
    customer: Customer
    type: InvoiceType = "invoice"
    currency: Optional[str] = None
    items: List[LineItem] = Field(default_factory=list)
    tax_rate: Decimal = Decimal("0")
    discount: Discount = Field(default_factory=Discount)
    due_date: Optional[date] = None
    notes: Optional[str] = None


class ConversionRequest(BaseModel):
    due_date: Optional[date] = None
    type: InvoiceType = "invoice"


class PaymentCreate(BaseModel):
    amount: Money
    method: PaymentMethod
    type: PaymentType = "installment"
    payment_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("payment_date")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class CreditNoteCreate(BaseModel):
    type: CreditNoteType
    reason: str
    items: List[CreditNoteItem] = Field(default_factory=list)


__all__ = [
    "ConversionRequest",
    "CreditNote",
    "CreditNoteCreate",
    "CreditNoteItem",
    "CreditNoteType",
    "Customer",
    "Discount",
    "DiscountType",
    "DocumentTotals",
    "Invoice",
    "InvoiceCreate",
    "InvoiceStatus",
    "InvoiceType",
    "ItemCategory",
    "LineItem",
    "Payment",
    "PaymentCreate",
    "PaymentMethod",
    "PaymentType",
    "Quotation",
    "QuotationCreate",
    "QuotationStatus",
    "QuotationUpdate",
    "as_utc",
]
