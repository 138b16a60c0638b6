from __future__ import annotations

from ..extensions import db
from ..models import ShippingMethod


# (name, description, price_cents, estimated_days)
DEFAULT_SHIPPING_METHODS = [
    ("Recogida en tienda", "Recoge tu pedido en nuestra tienda de Hellín", 0, "Inmediato"),
    ("Envío estándar", "Envío a domicilio en 1-2 días laborables", 450, "1-2 días"),
    ("Envío express", "Envío urgente en 24 horas", 650, "24 horas"),
]


def resolve_shipping_cost(method_name: str | None) -> int:
    """
    Price in cents of an active shipping method, looked up by exact name.

    Unknown, inactive or missing methods cost 0; checkout never fails on
    shipping lookup.
    """
    if not method_name:
        return 0
    method = (
        db.session.query(ShippingMethod)
        .filter_by(name=method_name, is_active=True)
        .first()
    )
    return method.price_cents if method else 0


def seed_shipping_methods() -> int:
    """Insert the default shipping methods that do not exist yet. Returns how many were created."""
    created = 0
    for name, description, price_cents, estimated_days in DEFAULT_SHIPPING_METHODS:
        if db.session.query(ShippingMethod).filter_by(name=name).first():
            continue
        db.session.add(ShippingMethod(
            name=name,
            description=description,
            price_cents=price_cents,
            estimated_days=estimated_days,
            is_active=True,
        ))
        created += 1
    db.session.commit()
    return created
