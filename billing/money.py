"""Fixed-precision money in integer minor units."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Tuple, Union

from pydantic import BaseModel, ConfigDict, field_validator

from billing.config import load_billing_config
from billing.errors import CurrencyMismatchError, ValidationError

# Largest decimal exponent accepted from callers; keeps exact ratios bounded.
MAX_EXPONENT = 1000

Number = Union[int, str, Decimal]


def to_decimal(value: Number) -> Decimal:
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValidationError(f"Not a finite number: {value!r}")
    if result and abs(result.adjusted()) > MAX_EXPONENT:
        raise ValidationError(f"Number out of range: {value!r}")
    return result


def _ratio(value: Decimal) -> Tuple[int, int]:
    try:
        return value.as_integer_ratio()
    except (ValueError, OverflowError) as exc:
        raise ValidationError(f"Not a finite number: {value!r}") from exc


def divide_half_up(numerator: int, denominator: int) -> int:
    """Exact integer division rounded half-up (ties away from zero)."""
    if denominator < 0:
        numerator, denominator = -numerator, -denominator
    quotient, remainder = divmod(abs(numerator), denominator)
    if 2 * remainder >= denominator:
        quotient += 1
    return -quotient if numerator < 0 else quotient


def round_half_up(value: Decimal) -> int:
    """Round a Decimal amount of minor units to an integer, ties away from zero."""
    return divide_half_up(*_ratio(value))


def _exponent_for(currency: str) -> int:
    settings = load_billing_config()
    return settings.currencies.get(currency, 2)


class Money(BaseModel):
    """An integer amount of minor units (e.g. cents) in one currency."""

    model_config = ConfigDict(frozen=True)

    amount: int
    currency: str

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        code = (value or "").strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"Invalid currency code: {value!r}")
        return code

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(amount=0, currency=currency)

    @classmethod
    def of(cls, major: Number, currency: str, exponent: int | None = None) -> "Money":
        """Build Money from a major-unit value ("198.00" USD -> 19800 cents)."""
        code = currency.upper()
        digits = _exponent_for(code) if exponent is None else exponent
        numerator, denominator = _ratio(to_decimal(major))
        return cls(amount=divide_half_up(numerator * 10**digits, denominator), currency=code)

    def _require_same_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(
                f"Cannot combine {self.currency} with {other.currency}.",
                details={"left": self.currency, "right": other.currency},
            )

    def add(self, other: "Money") -> "Money":
        self._require_same_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def subtract(self, other: "Money") -> "Money":
        self._require_same_currency(other)
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def multiply(self, factor: int) -> "Money":
        if isinstance(factor, bool) or not isinstance(factor, int):
            raise ValidationError("Money can only be multiplied by a whole number; use percentage() for rates.")
        return Money(amount=self.amount * factor, currency=self.currency)

    def percentage(self, rate: Number) -> "Money":
        """Return rate% of this amount, rounded half-up to the minor unit."""
        numerator, denominator = _ratio(to_decimal(rate))
        return Money(amount=divide_half_up(self.amount * numerator, 100 * denominator), currency=self.currency)

    def negate(self) -> "Money":
        return Money(amount=-self.amount, currency=self.currency)

    def min(self, other: "Money") -> "Money":
        self._require_same_currency(other)
        return self if self.amount <= other.amount else other

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def format(self) -> str:
        digits = _exponent_for(self.currency)
        major, minor = divmod(abs(self.amount), 10**digits)
        sign = "-" if self.amount < 0 else ""
        fraction = f".{minor:0{digits}d}" if digits else ""
        return f"{self.currency} {sign}{major:,}{fraction}"

    def __add__(self, other: "Money") -> "Money":
        return self.add(other)

    def __sub__(self, other: "Money") -> "Money":
        return self.subtract(other)

    def __lt__(self, other: "Money") -> bool:
        self._require_same_currency(other)
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        self._require_same_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: "Money") -> bool:
        self._require_same_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: "Money") -> bool:
        self._require_same_currency(other)
        return self.amount >= other.amount

    def __str__(self) -> str:
        return self.format()


def sum_money(values, currency: str) -> Money:
    total = Money.zero(currency)
    for value in values:
        total = total.add(value)
    return total
