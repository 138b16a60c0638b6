# Overview: Payload allowlists and business-rule checks for order and stock input.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Maximum quantity per order line; larger values are data entry errors
MAX_LINE_QUANTITY = 10_000

# Maximum stock a variant can hold after a manual movement
MAX_STOCK = 1_000_000

MOVEMENT_TYPES = {"IN", "OUT", "ADJUSTMENT", "RETURN"}


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which payload keys a client may send for one model.

    writable_fields is the allowlist; anything else is rejected.
    required_on_create keys must be present.
    """
    writable_fields: set[str]
    required_on_create: frozenset[str] = frozenset()


def _coerce_value(col, value: Any):
    """
    Integer columns take JSON integers only (no bools, floats or strings).
    String/Text values are stripped. JSON columns pass through unchanged.
    """
    if isinstance(col.type, Integer):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{col.key} must be an integer")
        return value

    if isinstance(col.type, (String, Text)):
        if not isinstance(value, str):
            raise ValidationError(f"{col.key} must be a string")
        return value.strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
) -> dict:
    """
    Check a create payload against the policy and the model's columns.

    Returns a cleaned dict holding only allowlisted keys, with values
    coerced per column type. NULL is accepted only for nullable columns;
    String(n) lengths are enforced.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = sorted(f for f in policy.required_on_create if f not in payload)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    cleaned: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}")
        col = columns[key]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            cleaned[key] = None
            continue

        value = _coerce_value(col, raw)
        if isinstance(value, str):
            if value == "" and not col.nullable:
                raise ValidationError(f"{key} cannot be blank")
            length = getattr(col.type, "length", None)
            if length and len(value) > length:
                raise ValidationError(f"{key} exceeds max length {length}")
        cleaned[key] = value

    return cleaned

def enforce_rules_order(patch: dict) -> None:
    """
    Business rules for an order header that column metadata cannot express.
    """
    email = patch.get("customer_email")
    if email is not None and "@" not in email:
        raise ValidationError("customer_email must be a valid email address")

    address = patch.get("shipping_address")
    if address is not None and not isinstance(address, dict):
        raise ValidationError("shipping_address must be an object")


def enforce_rules_order_item(patch: dict, position: int) -> None:
    quantity = patch.get("quantity")
    if quantity is None or quantity <= 0:
        raise ValidationError(f"items[{position}].quantity must be > 0")
    if quantity > MAX_LINE_QUANTITY:
        raise ValidationError(f"items[{position}].quantity cannot exceed {MAX_LINE_QUANTITY}")


def enforce_rules_stock_movement(patch: dict) -> None:
    # type must be known; quantity > 0 except ADJUSTMENT, where it is the new absolute stock
    movement_type = patch.get("type")
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(sorted(MOVEMENT_TYPES))}")

    quantity = patch.get("quantity")
    if quantity is None:
        raise ValidationError("quantity is required")
    if movement_type == "ADJUSTMENT":
        if quantity < 0:
            raise ValidationError("quantity must be >= 0 for ADJUSTMENT")
    elif quantity <= 0:
        raise ValidationError(f"quantity must be > 0 for {movement_type}")
    if quantity > MAX_STOCK:
        raise ValidationError(f"quantity cannot exceed {MAX_STOCK}")


def enforce_rules_stock_adjust(new_stock) -> int:
    if isinstance(new_stock, bool) or not isinstance(new_stock, int):
        raise ValidationError("new_stock must be an integer")
    if new_stock < 0:
        raise ValidationError("new_stock must be >= 0")
    if new_stock > MAX_STOCK:
        raise ValidationError(f"new_stock cannot exceed {MAX_STOCK}")
    return new_stock
