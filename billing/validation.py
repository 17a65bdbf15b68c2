"""Boundary checks shared by quotations and invoices."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from billing.config import BillingSettings
from billing.errors import ValidationError
from billing.models import Customer

PHONE_RE = re.compile(r"^[+]?[(]?[0-9]{1,4}[)]?[-\s.]?[(]?[0-9]{1,4}[)]?[-\s.]?[0-9]{1,9}$")
NAME_MIN = 2
NAME_MAX = 100

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_input(model: Type[ModelT], data: Union[ModelT, Mapping[str, Any]]) -> ModelT:
    """Coerce a mapping into ``model``; pydantic failures become ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        problems = []
        for err in exc.errors():
            location = ".".join(str(part) for part in err.get("loc", ()))
            problems.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
        raise ValidationError("; ".join(problems), details={"errors": problems}) from exc


def validate_customer(customer: Optional[Customer], *, required: bool) -> None:
    """
    Check customer contact details.

    With ``required`` all of name, email and phone must be present (invoices).
    Otherwise the customer is optional, but every supplied field must be valid.
    """
    if customer is None:
        if required:
            raise ValidationError("Customer name, email and phone are required.")
        return
    if required:
        missing = [field for field in ("name", "email", "phone") if not getattr(customer, field)]
        if missing:
            raise ValidationError(f"Customer is missing required fields: {', '.join(missing)}.")
    elif not (customer.name or customer.email or customer.phone):
        raise ValidationError("Customer must carry at least one of name, email or phone.")
    if customer.name is not None and not NAME_MIN <= len(customer.name) <= NAME_MAX:
        raise ValidationError(f"Customer name must be between {NAME_MIN} and {NAME_MAX} characters.")
    if customer.phone is not None and not PHONE_RE.match(customer.phone):
        raise ValidationError(f"Invalid phone number: {customer.phone}")


def resolve_currency(currency: Optional[str], settings: BillingSettings) -> str:
    code = (currency or settings.default_currency).upper()
    if not settings.supports(code):
        raise ValidationError(f"Unsupported currency: {code}")
    return code
