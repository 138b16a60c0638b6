# Overview: Pure order totals arithmetic in integer cents.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..validation import ValidationError


BPS_DENOMINATOR = 10_000
DEFAULT_TAX_RATE_BPS = 2100  # 21% IVA


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    tax_rate_bps: int
    tax_cents: int
    shipping_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "shipping_cents": self.shipping_cents,
            "total_cents": self.total_cents,
        }


def _require_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    if value < 0:
        raise ValidationError(f"{name} must be >= 0")
    return value


def calculate_tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    """subtotal * rate, rounded half-up to the cent (integer math, no floats)."""
    num = subtotal_cents * tax_rate_bps
    return (num + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def calculate_order_totals(
    lines: Iterable[dict],
    shipping_cents: int = 0,
    tax_rate_bps: int = DEFAULT_TAX_RATE_BPS,
) -> OrderTotals:
    """
    Totals for a set of lines ({"unit_price_cents", "quantity"}).

    Tax applies to the merchandise subtotal only; shipping is added after
    tax. total == subtotal + tax + shipping holds exactly.
    """
    shipping_cents = _require_int("shipping_cents", shipping_cents)
    tax_rate_bps = _require_int("tax_rate_bps", tax_rate_bps)

    subtotal = 0
    for line in lines:
        unit = _require_int("unit_price_cents", line["unit_price_cents"])
        qty = _require_int("quantity", line["quantity"])
        subtotal += unit * qty

    tax = calculate_tax_cents(subtotal, tax_rate_bps)
    return OrderTotals(
        subtotal_cents=subtotal,
        tax_rate_bps=tax_rate_bps,
        tax_cents=tax,
        shipping_cents=shipping_cents,
        total_cents=subtotal + tax + shipping_cents,
    )
