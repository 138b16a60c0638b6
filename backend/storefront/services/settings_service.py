from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import Setting


COMPANY_SETTING_KEYS = {
    "name": "company_name",
    "address": "company_address",
    "tax_id": "company_tax_id",
    "phone": "company_phone",
    "email": "company_email",
}

# Printed on invoices when the key has never been set
COMPANY_DEFAULTS: dict[str, Any] = {
    "name": "Lovilike Personalizados",
    "address": {
        "street": "Calle Principal 123",
        "city": "Madrid",
        "postal_code": "28001",
        "country": "España",
    },
    "tax_id": "B12345678",
    "phone": "+34 900 000 000",
    "email": "facturacion@lovilike.es",
}


class SettingsValidationError(ValueError):
    pass


def get_setting(key: str, default: Any = None) -> Any:
    row = db.session.query(Setting).filter_by(key=key).first()
    if row is None or row.value in (None, ""):
        return default
    return row.value


def set_setting(key: str, value: Any, *, user_id: int | None = None, commit: bool = True) -> Setting:
    if not key or len(key) > 128:
        raise SettingsValidationError("key must be 1..128 characters")

    row = db.session.query(Setting).filter_by(key=key).first()
    if row is None:
        row = Setting(key=key)
        db.session.add(row)
    row.value = value
    row.updated_by_user_id = user_id

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return row


def get_company_settings() -> dict:
    """
    Company identity snapshotted onto invoices.

    Each field falls back to COMPANY_DEFAULTS independently, so a partially
    configured company still yields a complete header.
    """
    rows = (
        db.session.query(Setting)
        .filter(Setting.key.in_(COMPANY_SETTING_KEYS.values()))
        .all()
    )
    stored = {row.key: row.value for row in rows}

    company = {}
    for field, key in COMPANY_SETTING_KEYS.items():
        value = stored.get(key)
        company[field] = value if value not in (None, "") else COMPANY_DEFAULTS[field]
    return company
