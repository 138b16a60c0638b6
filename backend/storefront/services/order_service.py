"""
Order Service - document-first order creation

WHY: A checkout is one unit of work. Validation, pricing, numbering, the
order rows, the stock debits, the timeline and the notification intents are
written in a single DB transaction; either all of it commits or none of it
does (no stock touched, no order number consumed).

Post-commit side effects (invoice issuance, notification delivery) are
best-effort: their failures are logged and reported as warnings, never
undoing the committed order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta, timezone

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Address, Invoice, Order, OrderItem, Product, ProductVariant, User
from ..errors import (
    OrderEngineError,
    ValidationFailed,
    NotFound,
    DuplicateResource,
    InternalError,
)
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_order,
    enforce_rules_order_item,
)
from ..customization import parse_customization, serialize_customization
from storefront.time_utils import utcnow, to_business_time
from . import stock_ledger_service, invoice_service
from .reservation_service import validate_stock_availability
from .totals_service import calculate_order_totals
from .numbering_service import allocate_order_number
from .shipping_service import resolve_shipping_cost
from .timeline_service import append_order_event
from .notification_service import record_event, dispatch_after_commit
from .concurrency import lock_for_update, run_with_retry, begin_write_transaction


ORDER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_email",
        "customer_name",
        "customer_phone",
        "customer_notes",
        "shipping_method",
        "shipping_address",
        "payment_method",
        "user_id",
        "address_id",
    },
    required_on_create={"customer_email", "customer_name"},
)

ORDER_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "variant_id", "quantity", "customization"},
    required_on_create={"quantity"},
)

# Prices are always resolved server-side; client-sent prices are dropped
IGNORED_ITEM_FIELDS = {"unit_price", "unit_price_cents", "total_price", "total_price_cents"}

DELETABLE_STATUSES = ("PENDING", "CANCELLED")


@dataclass
class OrderCreationResult:
    order: Order
    invoice: Invoice | None = None
    warnings: list[str] = field(default_factory=list)


def parse_order_payload(data: dict) -> tuple[dict, list[dict]]:
    """
    Shape-check a checkout payload.

    Returns (header, items). Raises ValidationError for malformed input;
    business checks (stock, active flags) happen later in create_order.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    header_payload = {k: v for k, v in data.items() if k != "items"}
    header = validate_payload(
        model=Order,
        payload=header_payload,
        policy=ORDER_CREATE_POLICY,
    )
    enforce_rules_order(header)

    items = []
    for position, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{position}] must be an object")
        raw = {k: v for k, v in raw.items() if k not in IGNORED_ITEM_FIELDS}
        item = validate_payload(
            model=OrderItem,
            payload=raw,
            policy=ORDER_ITEM_POLICY,
        )
        enforce_rules_order_item(item, position)
        if not item.get("variant_id") and not item.get("product_id"):
            raise ValidationError(f"items[{position}] requires product_id or variant_id")
        item["customization"] = serialize_customization(parse_customization(item.get("customization")))
        items.append(item)

    return header, items


def _resolve_lines(items: list[dict]) -> list[dict]:
    """
    Attach server-side prices. Variant price overrides the product base price.

    Runs after the availability check, so every referenced row exists.
    """
    lines = []
    errors = []
    for position, item in enumerate(items):
        variant_id = item.get("variant_id")
        if variant_id:
            variant = db.session.get(ProductVariant, variant_id)
            product_id = item.get("product_id")
            if product_id and product_id != variant.product_id:
                errors.append(f"items[{position}]: variant {variant.sku} does not belong to product {product_id}")
                continue
            product_id = variant.product_id
            unit_price = variant.effective_price_cents
        else:
            product = db.session.get(Product, item["product_id"])
            product_id = product.id
            unit_price = product.base_price_cents

        lines.append({
            "product_id": product_id,
            "variant_id": variant_id or None,
            "quantity": item["quantity"],
            "unit_price_cents": unit_price,
            "customization": item.get("customization"),
        })
    if errors:
        raise ValidationFailed(errors)
    return lines


def _check_references(header: dict) -> None:
    user_id = header.get("user_id")
    if user_id is not None and db.session.get(User, user_id) is None:
        raise NotFound("User not found")

    address_id = header.get("address_id")
    if address_id is not None:
        address = db.session.get(Address, address_id)
        if address is None:
            raise NotFound("Address not found")
        if address.user_id is not None and address.user_id != user_id:
            raise ValidationFailed(["Address does not belong to the user"])


def _create_order_locked(header: dict, items: list[dict], actor_user_id: int | None) -> Order:
    _check_references(header)

    check = validate_stock_availability(items)
    if not check.valid:
        raise ValidationFailed(check.errors)

    shipping_cents = resolve_shipping_cost(header.get("shipping_method"))
    lines = _resolve_lines(items)
    totals = calculate_order_totals(
        lines,
        shipping_cents=shipping_cents,
        tax_rate_bps=current_app.config.get("TAX_RATE_BPS", 2100),
    )
    order_number = allocate_order_number()

    order = Order(
        order_number=order_number,
        status="PENDING",
        payment_status="PENDING",
        subtotal_cents=totals.subtotal_cents,
        tax_rate_bps=totals.tax_rate_bps,
        tax_cents=totals.tax_cents,
        shipping_cents=totals.shipping_cents,
        total_cents=totals.total_cents,
        created_at=utcnow(),
        **header,
    )
    for line in lines:
        order.items.append(OrderItem(
            product_id=line["product_id"],
            variant_id=line["variant_id"],
            quantity=line["quantity"],
            unit_price_cents=line["unit_price_cents"],
            total_price_cents=line["unit_price_cents"] * line["quantity"],
            production_status="PENDING",
            customization=line["customization"],
        ))
    db.session.add(order)
    db.session.flush()

    # Authoritative stock check: debits in submitted order, any failure aborts all
    reason = f"Reserved by order {order_number}"
    for line in lines:
        if line["variant_id"] is None:
            continue
        stock_ledger_service.debit(
            line["variant_id"],
            line["quantity"],
            reason,
            order_id=order.id,
            actor_user_id=actor_user_id,
        )

    append_order_event(
        order_id=order.id,
        event_type="order.created",
        description=f"Order {order_number} created",
        payload={"total_cents": order.total_cents, "item_count": len(lines)},
        actor_user_id=actor_user_id,
    )
    record_event(
        "order.created",
        {
            "order_id": order.id,
            "order_number": order_number,
            "customer_email": order.customer_email,
            "customer_name": order.customer_name,
            "total_cents": order.total_cents,
        },
        order_id=order.id,
    )
    return order


def create_order(data: dict, *, actor_user_id: int | None = None) -> OrderCreationResult:
    """
    Turn a cart into a persisted order, atomically.

    Raises ValidationError (malformed payload), NotFound (user/address),
    ValidationFailed (stock/availability), InsufficientStock (lost a race at
    debit time), DuplicateResource or InternalError (persistence failure).
    """
    header, items = parse_order_payload(data)

    def _op():
        begin_write_transaction()
        try:
            order = _create_order_locked(header, items, actor_user_id)
            db.session.commit()
        except (OperationalError, StaleDataError):
            raise
        except IntegrityError as exc:
            db.session.rollback()
            current_app.logger.warning("Order insert hit a unique constraint: %s", exc)
            raise DuplicateResource("Order number collision, please retry") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Order creation failed")
            raise InternalError("Order could not be saved") from exc
        return order

    order = run_with_retry(_op)
    order_id = order.id
    current_app.logger.info("Order %s created (id=%s)", order.order_number, order_id)

    warnings: list[str] = []
    invoice = None
    try:
        invoice = invoice_service.issue_invoice(order_id)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Automatic invoice failed for order %s", order_id)
        message = exc.message if isinstance(exc, OrderEngineError) else str(exc)
        warnings.append(f"Invoice could not be generated: {message}")

    warnings.extend(dispatch_after_commit(order_id=order_id))

    order = db.session.get(Order, order_id)
    return OrderCreationResult(order=order, invoice=invoice, warnings=warnings)


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


def list_orders(
    *,
    search: str | None = None,
    status: str | None = None,
    page: int = 1,
    per_page: int = 10,
) -> tuple[list[Order], int]:
    """Newest first. search matches order number, customer name or email."""
    page = max(page, 1)
    per_page = min(max(per_page, 1), 100)

    q = db.session.query(Order)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            Order.order_number.ilike(like),
            Order.customer_name.ilike(like),
            Order.customer_email.ilike(like),
        ))
    if status:
        q = q.filter(Order.status == status)

    total = q.count()
    orders = (
        q.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return orders, total


def order_stats() -> dict:
    """
    Quick stats for the order list header.

    Revenue excludes CANCELLED and REFUNDED orders. "Today" is the current
    business day in BUSINESS_TIMEZONE.
    """
    revenue = (
        db.session.query(func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.status.notin_(("CANCELLED", "REFUNDED")))
        .scalar()
    )
    total_orders = db.session.query(func.count(Order.id)).scalar()

    local_now = to_business_time(utcnow(), current_app.config.get("BUSINESS_TIMEZONE", "UTC"))
    local_midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    day_start = local_midnight.astimezone(timezone.utc).replace(tzinfo=None)
    today_orders = (
        db.session.query(func.count(Order.id))
        .filter(Order.created_at >= day_start, Order.created_at < day_start + timedelta(days=1))
        .scalar()
    )

    status_counts = dict(
        db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    )
    return {
        "total_revenue_cents": int(revenue or 0),
        "total_orders": int(total_orders or 0),
        "today_orders": int(today_orders or 0),
        "status_counts": {k: int(v) for k, v in status_counts.items()},
    }


def delete_order(order_id: int, *, actor_user_id: int | None = None) -> str:
    """
    Physically delete a PENDING or CANCELLED order. Returns its order number.

    A PENDING order still holds stock, which is credited back. An unpaid
    invoice goes with the order; a PAID invoice blocks deletion. Stock
    movements and outbox rows keep the plain order id.
    """
    def _op():
        begin_write_transaction()
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        if order.status not in DELETABLE_STATUSES:
            raise OrderEngineError(
                f"Only PENDING or CANCELLED orders can be deleted (order is {order.status})",
                details={"status": order.status},
            )

        invoice = db.session.query(Invoice).filter_by(order_id=order.id).first()
        if invoice is not None:
            if invoice.status == "PAID":
                raise OrderEngineError(
                    f"Order {order.order_number} has a paid invoice and cannot be deleted",
                    details={"invoice_number": invoice.invoice_number},
                )
            db.session.delete(invoice)

        if order.status == "PENDING":
            reason = f"Released by deletion of {order.order_number}"
            for item in order.items:
                if item.variant_id is not None:
                    stock_ledger_service.credit(
                        item.variant_id,
                        item.quantity,
                        reason,
                        order_id=order.id,
                        actor_user_id=actor_user_id,
                    )

        order_number = order.order_number
        record_event(
            "order.deleted",
            {"order_id": order.id, "order_number": order_number, "status": order.status},
            order_id=order.id,
        )
        db.session.delete(order)
        db.session.commit()
        return order_number

    order_number = run_with_retry(_op)
    current_app.logger.info("Order %s deleted", order_number)
    return order_number
