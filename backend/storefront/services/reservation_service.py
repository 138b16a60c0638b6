# Overview: Read-only stock availability check run before an order is written.

from __future__ import annotations

from dataclasses import dataclass, field

from ..extensions import db
from ..models import Product, ProductVariant


@dataclass
class ReservationCheck:
    valid: bool
    errors: list[str] = field(default_factory=list)


def validate_stock_availability(items: list[dict]) -> ReservationCheck:
    """
    Check that every requested line can be served right now.

    Each item is {"variant_id"?, "product_id"?, "quantity"}. A line with a
    variant is checked for existence, active flag and stock; a line without
    one only for product existence and active flag (plain products carry no
    stock count).

    Lines repeating a variant are checked against their running total, so
    two lines of 2 against a stock of 3 fail on the second line.

    Read-only and lock-free: the authoritative check is the ledger debit
    inside the creation transaction.
    """
    errors: list[str] = []
    requested_by_variant: dict[int, int] = {}

    for item in items:
        quantity = item.get("quantity") or 0
        variant_id = item.get("variant_id")

        if variant_id:
            variant = db.session.get(ProductVariant, variant_id)
            if variant is None:
                errors.append(f"Variant {variant_id} not found")
                continue

            label = f"{variant.product.name} ({variant.sku})"
            if not variant.is_active or not variant.product.is_active:
                errors.append(f"{label} is not available")
                continue

            requested = requested_by_variant.get(variant.id, 0) + quantity
            requested_by_variant[variant.id] = requested
            if variant.stock < requested:
                errors.append(
                    f"Insufficient stock for {label}. "
                    f"Available: {variant.stock}, requested: {requested}"
                )
            continue

        product_id = item.get("product_id")
        product = db.session.get(Product, product_id) if product_id else None
        if product is None:
            errors.append(f"Product {product_id} not found")
            continue
        if not product.is_active:
            errors.append(f"{product.name} is not available")

    return ReservationCheck(valid=not errors, errors=errors)
