# Overview: Issues immutable invoice snapshots for orders, at most one per order.

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Invoice, Order
from ..errors import NotFound, DuplicateResource
from ..validation import ValidationError
from storefront.time_utils import utcnow
from .numbering_service import allocate_invoice_number
from .settings_service import get_company_settings
from .timeline_service import append_order_event
from .notification_service import record_event
from .concurrency import lock_for_update, run_with_retry, begin_write_transaction


INVOICE_STATUSES = ("PENDING", "PAID", "OVERDUE", "CANCELLED")


def _line_items_snapshot(order: Order) -> list[dict]:
    lines = []
    for item in order.items:
        lines.append({
            "item_id": item.id,
            "product_id": item.product_id,
            "product_name": item.product.name if item.product else None,
            "description": item.product.description if item.product else None,
            "variant_id": item.variant_id,
            "variant_name": item.variant.name if item.variant else None,
            "sku": item.variant.sku if item.variant else None,
            "quantity": item.quantity,
            "unit_price_cents": item.unit_price_cents,
            "total_price_cents": item.total_price_cents,
            "customization": item.customization,
        })
    return lines


def _billing_address(order: Order) -> dict | None:
    if order.shipping_address:
        return dict(order.shipping_address)
    if order.address is not None:
        return order.address.to_dict()
    return None


def build_invoice(order: Order, *, notes: str | None = None) -> Invoice:
    """
    Core issuance without locking, retry, or commit.

    Amounts are copied from the order as stored, so the invoice total always
    equals the order total the customer was charged.
    """
    existing = db.session.query(Invoice).filter_by(order_id=order.id).first()
    if existing is not None:
        raise DuplicateResource(
            f"Invoice already exists for order {order.order_number}",
            details={"invoice_id": existing.id, "invoice_number": existing.invoice_number},
        )

    company = get_company_settings()
    issued_at = utcnow()
    due_days = current_app.config.get("INVOICE_DUE_DAYS", 30)

    invoice = Invoice(
        invoice_number=allocate_invoice_number(issued_at),
        order_id=order.id,
        status="PENDING",
        subtotal_cents=order.subtotal_cents,
        shipping_cents=order.shipping_cents,
        tax_rate_bps=order.tax_rate_bps,
        tax_cents=order.tax_cents,
        total_cents=order.total_cents,
        issue_date=issued_at,
        due_date=issued_at + timedelta(days=due_days),
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone,
        billing_address=_billing_address(order),
        company_name=company["name"],
        company_address=company["address"],
        company_tax_id=company["tax_id"],
        company_phone=company["phone"],
        company_email=company["email"],
        line_items=_line_items_snapshot(order),
        payment_terms=current_app.config.get("INVOICE_PAYMENT_TERMS", "Net 30"),
        notes=notes if notes is not None else f"Invoice generated automatically for order {order.order_number}",
    )
    db.session.add(invoice)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise _duplicate_from_integrity_error(exc, order, invoice.invoice_number) from exc
    return invoice


def _duplicate_from_integrity_error(exc: IntegrityError, order: Order, invoice_number: str) -> DuplicateResource:
    """
    Name the unique constraint that fired.

    SQLite reports columns ("invoices.order_id"), PostgreSQL the constraint
    name ("uq_invoices_order_id").
    """
    message = str(exc.orig)
    if "invoice_number" in message:
        return DuplicateResource(
            f"Invoice number {invoice_number} is already in use",
            details={"invoice_number": invoice_number},
        )
    return DuplicateResource(f"Invoice already exists for order {order.order_number}")


def issue_invoice(order_id: int, *, notes: str | None = None, actor_user_id: int | None = None) -> Invoice:
    """Committed issuance. Raises DuplicateResource if the order already has an invoice."""
    def _op():
        begin_write_transaction()
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFound(f"Order {order_id} not found")

        invoice = build_invoice(order, notes=notes)
        append_order_event(
            order_id=order.id,
            event_type="invoice.issued",
            description=f"Invoice {invoice.invoice_number} issued",
            payload={"invoice_id": invoice.id, "invoice_number": invoice.invoice_number},
            actor_user_id=actor_user_id,
        )
        record_event(
            "invoice.issued",
            {
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "order_number": order.order_number,
                "customer_email": order.customer_email,
                "total_cents": invoice.total_cents,
            },
            order_id=order.id,
        )
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFound(f"Invoice {invoice_id} not found")
    return invoice


def list_invoices(
    *,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Invoice], int]:
    page = max(page, 1)
    per_page = min(max(per_page, 1), 100)

    q = db.session.query(Invoice)
    if status:
        q = q.filter(Invoice.status == status)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            Invoice.invoice_number.ilike(like),
            Invoice.customer_name.ilike(like),
            Invoice.customer_email.ilike(like),
        ))

    total = q.count()
    invoices = (
        q.order_by(Invoice.issue_date.desc(), Invoice.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return invoices, total


def update_invoice_status(invoice_id: int, status: str | None, *, notes: str | None = None) -> Invoice:
    """
    Status (and notes) are the only mutable parts of an invoice.

    PAID stamps paid_at; moving away from PAID clears it.
    """
    if status is not None and status not in INVOICE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")

    def _op():
        begin_write_transaction()
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise NotFound(f"Invoice {invoice_id} not found")

        if status is not None and status != invoice.status:
            if status == "PAID":
                invoice.paid_at = utcnow()
            elif invoice.status == "PAID":
                invoice.paid_at = None
            invoice.status = status
        if notes is not None:
            invoice.notes = notes

        db.session.commit()
        return invoice

    return run_with_retry(_op)
