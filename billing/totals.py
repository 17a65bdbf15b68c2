"""Line-item and document totals: subtotal, discount, tax, grand total."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

from billing.errors import CurrencyMismatchError, ValidationError
from billing.models import Discount, DocumentTotals, LineItem
from billing.money import Money, Number, sum_money, to_decimal

DESCRIPTION_MIN = 3
DESCRIPTION_MAX = 500
HUNDRED = Decimal("100")


def compute_line_total(item: LineItem) -> Money:
    return item.unit_price.multiply(item.quantity)


def validate_line_item(item: LineItem, currency: str, *, index: int = 0) -> None:
    label = f"items[{index}]"
    description = (item.description or "").strip()
    if not DESCRIPTION_MIN <= len(description) <= DESCRIPTION_MAX:
        raise ValidationError(
            f"{label}: description must be between {DESCRIPTION_MIN} and {DESCRIPTION_MAX} characters."
        )
    if item.quantity < 1:
        raise ValidationError(f"{label}: quantity must be at least 1.")
    if item.unit_price.currency != currency:
        raise CurrencyMismatchError(
            f"{label}: unit price is in {item.unit_price.currency}, document currency is {currency}."
        )
    if item.unit_price.is_negative():
        raise ValidationError(f"{label}: unit price must not be negative.")
    if item.total_price is not None:
        expected = compute_line_total(item)
        if item.total_price != expected:
            raise ValidationError(
                f"{label}: total price {item.total_price} does not equal quantity x unit price ({expected}).",
                details={"expected": expected.amount, "supplied": item.total_price.amount},
            )


def validate_tax_rate(tax_rate: Number) -> Decimal:
    rate = to_decimal(tax_rate)
    if rate < 0 or rate > HUNDRED:
        raise ValidationError(f"Tax rate must be between 0 and 100, got {rate}.")
    return rate


def validate_discount(discount: Discount) -> None:
    if discount.value < 0:
        raise ValidationError("Discount value must not be negative.")


def compute_discount(subtotal: Money, discount: Discount) -> Money:
    if discount.type == "percentage":
        rate = min(max(discount.value, Decimal("0")), HUNDRED)
        return subtotal.percentage(rate)
    if discount.type == "fixed":
        return Money.of(discount.value, subtotal.currency).min(subtotal)
    return Money.zero(subtotal.currency)


def compute_document_totals(
    items: Sequence[LineItem],
    tax_rate: Number,
    discount: Optional[Discount] = None,
    *,
    currency: Optional[str] = None,
) -> DocumentTotals:
    """
    Aggregate line items into subtotal, discount, tax and grand total.

    Order of application: discount on the subtotal, then tax on the
    discounted base. Tax is rounded half-up to the minor unit.
    """
    if not items:
        raise ValidationError("At least one item is required.")
    discount = discount or Discount()
    doc_currency = (currency or items[0].unit_price.currency).upper()
    for index, item in enumerate(items):
        validate_line_item(item, doc_currency, index=index)
    rate = validate_tax_rate(tax_rate)
    validate_discount(discount)

    subtotal = sum_money((compute_line_total(item) for item in items), doc_currency)
    discount_amount = compute_discount(subtotal, discount)
    taxable_base = subtotal - discount_amount
    tax_amount = taxable_base.percentage(rate)
    return DocumentTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        grand_total=taxable_base + tax_amount,
    )
