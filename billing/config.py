"""Loader for ledger defaults (currencies, tolerances, numbering)."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "billing.yaml"

REQUIRED_KEYS = ("default_currency", "currencies", "numbering")
REQUIRED_PREFIXES = ("quotation", "invoice", "proforma", "payment", "credit_note")


class BillingSettings(BaseModel):
    default_currency: str = "LKR"
    currencies: Dict[str, int] = Field(default_factory=lambda: {"LKR": 2})
    payment_tolerance_minor: int = 0
    quotation_validity_days: int = 30
    invoice_due_days: int = 15
    numbering: Dict[str, str] = Field(default_factory=dict)

    def minor_unit_exponent(self, currency: str) -> int:
        return self.currencies[currency.upper()]

    def supports(self, currency: str) -> bool:
        return currency.upper() in self.currencies

    def prefix_for(self, kind: str) -> str:
        return self.numbering.get(kind, kind[:3].upper())


def config_path() -> Path:
    override = os.getenv("BILLING_CONFIG_PATH")
    return Path(override) if override else DEFAULT_CONFIG_PATH


def _validate_config(data: Dict[str, Any]) -> None:
    """Raise ValueError if the raw mapping is missing keys or has bad values."""
    if not isinstance(data, dict):
        raise ValueError("Billing config must be a mapping.")
    missing = [key for key in REQUIRED_KEYS if key not in data]
    numbering = data.get("numbering") or {}
    missing.extend(f"numbering.{kind}" for kind in REQUIRED_PREFIXES if kind not in numbering)
    if missing:
        raise ValueError(f"Billing config missing required keys: {', '.join(missing)}")

    currencies = data.get("currencies") or {}
    for code, exponent in currencies.items():
        if not isinstance(exponent, int) or exponent < 0:
            raise ValueError(f"Minor-unit exponent for {code} must be a non-negative integer.")
    default_currency = str(data["default_currency"]).upper()
    if default_currency not in {str(c).upper() for c in currencies}:
        raise ValueError(f"Default currency {default_currency} is not listed under currencies.")
    if int(data.get("payment_tolerance_minor", 0)) < 0:
        raise ValueError("payment_tolerance_minor must not be negative.")


@lru_cache(maxsize=1)
def load_billing_config() -> BillingSettings:
    """
    Load ledger settings from config/billing.yaml (or $BILLING_CONFIG_PATH).

    Currency codes are normalized to upper case.
    """
    path = config_path()
    if not path.exists():
        raise FileNotFoundError(f"Billing config not found at {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    _validate_config(raw)
    raw["default_currency"] = str(raw["default_currency"]).upper()
    raw["currencies"] = {str(code).upper(): int(exp) for code, exp in raw["currencies"].items()}
    return BillingSettings(**raw)
