from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from billing.models import Discount, LineItem, QuotationStatus


class StatusChange(BaseModel):
    status: QuotationStatus


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class TotalsPreviewRequest(BaseModel):
    items: List[LineItem] = Field(default_factory=list)
    tax_rate: Decimal = Decimal("0")
    discount: Optional[Discount] = None
    currency: Optional[str] = None
