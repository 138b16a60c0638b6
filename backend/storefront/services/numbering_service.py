# Overview: Allocates human-readable order and invoice numbers from counter rows.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from storefront.time_utils import utcnow, to_business_time
"""
Document numbering invariants (authoritative)

- Numbers come from a DocumentSequence counter row, never from counting
  existing orders/invoices.
- Allocation runs inside the caller's transaction and never commits. If the
  caller rolls back, the increment rolls back with it and the number is not
  consumed.
- The counter row is incremented with a single UPDATE, so two writers
  serialize on the row lock (or on the SQLite writer lock).
- First use of a scope inserts the row inside a SAVEPOINT; losing that race
  to the unique constraint falls back to the UPDATE path.

Formats (consumed by printed documents and customer lookups, keep exact):
- Order:   {PREFIX}{YY}{MM}{DD}-{seq:03d}   e.g. LV240115-001
- Invoice: {YYYY}-{seq:04d}                 e.g. 2024-0001
"""


class NumberingError(Exception):
    """Raised when a sequence cannot be allocated."""
    pass


def next_sequence_value(sequence_key: str) -> int:
    """
    Atomically take the next value of a counter row (1 on first use).

    Must be called inside an open write transaction; does not commit.
    """
    if not sequence_key:
        raise NumberingError("sequence_key is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.sequence_key == sequence_key)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        savepoint = db.session.begin_nested()
        try:
            db.session.add(DocumentSequence(sequence_key=sequence_key, next_number=2))
            db.session.flush()
            savepoint.commit()
            return 1
        except IntegrityError:
            # Another writer created the row first
            savepoint.rollback()
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(sequence_key=sequence_key)
        .scalar()
    )
    return current - 1


def _business_now(now: datetime | None) -> datetime:
    tz_name = current_app.config.get("BUSINESS_TIMEZONE", "UTC")
    return to_business_time(now or utcnow(), tz_name)


def allocate_order_number(now: datetime | None = None) -> str:
    """
    Allocate the next order number for the business day of `now`.

    The sequence restarts at 001 every business day. Numbers beyond 999 keep
    growing in width (LV240115-1000) rather than wrapping.
    """
    local = _business_now(now)
    prefix = current_app.config.get("ORDER_NUMBER_PREFIX", "LV")
    seq = next_sequence_value(f"ORDER:{local.strftime('%y%m%d')}")
    return f"{prefix}{local.strftime('%y%m%d')}-{seq:03d}"


def allocate_invoice_number(now: datetime | None = None) -> str:
    """Allocate the next invoice number for the business year of `now`."""
    local = _business_now(now)
    seq = next_sequence_value(f"INVOICE:{local.strftime('%Y')}")
    return f"{local.strftime('%Y')}-{seq:04d}"
