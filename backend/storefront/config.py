# backend/storefront/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Storefront frontends allowed to call the API from a browser
    CORS_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if o.strip()
    )

    # bcrypt cost factor for password hashes
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Flat tax rate in basis points (2100 = 21% IVA)
    TAX_RATE_BPS = _env_int("TAX_RATE_BPS", 2100)

    # Calendar used to scope order numbers to a day and invoice numbers to a year
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")
    ORDER_NUMBER_PREFIX = os.environ.get("ORDER_NUMBER_PREFIX", "LV")

    INVOICE_DUE_DAYS = _env_int("INVOICE_DUE_DAYS", 30)
    INVOICE_PAYMENT_TERMS = os.environ.get("INVOICE_PAYMENT_TERMS", "Net 30")

    OUTBOX_MAX_ATTEMPTS = _env_int("OUTBOX_MAX_ATTEMPTS", 5)
    ORDER_RETRY_ATTEMPTS = _env_int("ORDER_RETRY_ATTEMPTS", 5)

    # SQLite only: open write transactions with BEGIN IMMEDIATE
    SQLITE_BEGIN_IMMEDIATE = _env_bool("SQLITE_BEGIN_IMMEDIATE", True)

    # Callable(event_type, payload) fed by the outbox; None -> log only
    NOTIFIER = None
