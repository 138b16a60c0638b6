# Overview: Order lifecycle state machine and production progress.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Order, OrderItem
from ..errors import NotFound, InvalidTransition
from ..validation import ValidationError
from storefront.time_utils import utcnow
from . import stock_ledger_service
from .timeline_service import append_order_event
from .notification_service import record_event, dispatch_after_commit
from .concurrency import lock_for_update, run_with_retry, begin_write_transaction
"""
Order lifecycle (authoritative)

    PENDING          -> CONFIRMED, CANCELLED
    CONFIRMED        -> IN_PRODUCTION, CANCELLED
    IN_PRODUCTION    -> READY_FOR_PICKUP, SHIPPED, CANCELLED
    READY_FOR_PICKUP -> DELIVERED, CANCELLED
    SHIPPED          -> DELIVERED, CANCELLED
    DELIVERED        -> REFUNDED
    CANCELLED, REFUNDED: terminal

Only listed edges are legal. A rejected transition changes nothing.

Side effects (same DB transaction as the status write):
- DELIVERED stamps delivered_at.
- SHIPPED sets tracking_number (given, existing, or TRK-{order_number}).
- CANCELLED stamps cancelled_at and credits every variant-backed item back
  to stock through the stock ledger.
- Every transition appends a timeline event and an outbox intent.

Production-driven promotion:
- All items COMPLETED -> READY_FOR_PICKUP; any item IN_PROGRESS -> IN_PRODUCTION.
- Only applied while the order is CONFIRMED or IN_PRODUCTION, and only along
  legal edges (CONFIRMED -> IN_PRODUCTION -> READY_FOR_PICKUP, one event per
  step). For any other status the promotion is skipped and the skip is
  recorded on the timeline.
"""


ORDER_STATUS_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "PENDING": ("CONFIRMED", "CANCELLED"),
    "CONFIRMED": ("IN_PRODUCTION", "CANCELLED"),
    "IN_PRODUCTION": ("READY_FOR_PICKUP", "SHIPPED", "CANCELLED"),
    "READY_FOR_PICKUP": ("DELIVERED", "CANCELLED"),
    "SHIPPED": ("DELIVERED", "CANCELLED"),
    "DELIVERED": ("REFUNDED",),
    "CANCELLED": (),
    "REFUNDED": (),
}

ORDER_STATUSES = tuple(ORDER_STATUS_TRANSITIONS)
TERMINAL_STATUSES = ("CANCELLED", "REFUNDED")

PRODUCTION_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "ON_HOLD")

# Order statuses from which production progress may move the order forward
AUTO_PROMOTABLE_STATUSES = ("CONFIRMED", "IN_PRODUCTION")

# Legal path from each promotable status to each promotion target
_PROMOTION_PATHS = {
    ("CONFIRMED", "IN_PRODUCTION"): ("IN_PRODUCTION",),
    ("CONFIRMED", "READY_FOR_PICKUP"): ("IN_PRODUCTION", "READY_FOR_PICKUP"),
    ("IN_PRODUCTION", "READY_FOR_PICKUP"): ("READY_FOR_PICKUP",),
}


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ORDER_STATUS_TRANSITIONS.get(from_status, ())


def allowed_transitions(status: str) -> list[str]:
    return list(ORDER_STATUS_TRANSITIONS.get(status, ()))


def _release_stock(order: Order, actor_user_id: int | None) -> None:
    reason = f"Released by cancellation of {order.order_number}"
    for item in order.items:
        if item.variant_id is None:
            continue
        stock_ledger_service.credit(
            item.variant_id,
            item.quantity,
            reason,
            order_id=order.id,
            actor_user_id=actor_user_id,
        )


def apply_transition(
    order: Order,
    new_status: str,
    *,
    actor_user_id: int | None = None,
    notes: str | None = None,
    tracking_number: str | None = None,
    trigger: str = "manual",
) -> Order:
    """
    Core transition logic without locking, retry, or commit.

    Raises InvalidTransition for any edge not in ORDER_STATUS_TRANSITIONS.
    """
    old_status = order.status
    if not can_transition(old_status, new_status):
        raise InvalidTransition(old_status, new_status)

    now = utcnow()
    order.status = new_status

    if new_status == "DELIVERED":
        order.delivered_at = now
    elif new_status == "SHIPPED":
        order.tracking_number = tracking_number or order.tracking_number or f"TRK-{order.order_number}"
    elif new_status == "CANCELLED":
        order.cancelled_at = now
        _release_stock(order, actor_user_id)

    if trigger == "manual":
        event_type = "order.status_changed"
        description = f"Order status changed from {old_status} to {new_status}"
    else:
        event_type = "order.status_auto_updated"
        description = f"Order status automatically updated to {new_status} based on {trigger.replace('_', ' ')}"

    append_order_event(
        order_id=order.id,
        event_type=event_type,
        description=description,
        payload={
            "from_status": old_status,
            "to_status": new_status,
            "trigger": trigger,
            "notes": notes,
            "tracking_number": order.tracking_number if new_status == "SHIPPED" else None,
        },
        actor_user_id=actor_user_id,
    )
    record_event(
        "order.status_changed",
        {
            "order_id": order.id,
            "order_number": order.order_number,
            "from_status": old_status,
            "to_status": new_status,
            "customer_email": order.customer_email,
            "customer_name": order.customer_name,
            "tracking_number": order.tracking_number,
        },
        order_id=order.id,
    )
    return order


def _load_order_locked(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


def transition_order_status(
    order_id: int,
    new_status: str,
    *,
    actor_user_id: int | None = None,
    notes: str | None = None,
    tracking_number: str | None = None,
) -> Order:
    """Committed, retried status change. Notifications are drained after commit."""
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")

    def _op():
        begin_write_transaction()
        order = _load_order_locked(order_id)
        apply_transition(
            order,
            new_status,
            actor_user_id=actor_user_id,
            notes=notes,
            tracking_number=tracking_number,
        )
        db.session.commit()
        return order

    order = run_with_retry(_op)
    dispatch_after_commit(order_id=order.id)
    return order


def _promotion_target(items: list[OrderItem]) -> str | None:
    if not items:
        return None
    statuses = [item.production_status for item in items]
    if all(s == "COMPLETED" for s in statuses):
        return "READY_FOR_PICKUP"
    if any(s == "IN_PROGRESS" for s in statuses):
        return "IN_PRODUCTION"
    return None


def auto_promote_order(order: Order, *, actor_user_id: int | None = None) -> list[str]:
    """
    Move the order forward from its items' production progress.

    Returns the statuses stepped through (empty when nothing changed).
    """
    target = _promotion_target(order.items)
    if target is None or order.status == target:
        return []

    path = _PROMOTION_PATHS.get((order.status, target))
    if path is None:
        current_app.logger.info(
            "Skipping production-driven promotion of order %s from %s to %s",
            order.order_number, order.status, target,
        )
        append_order_event(
            order_id=order.id,
            event_type="order.auto_status_skipped",
            description=f"Automatic update to {target} skipped: order is {order.status}",
            payload={"current_status": order.status, "target_status": target, "trigger": "production_progress"},
            actor_user_id=actor_user_id,
        )
        return []

    for step in path:
        apply_transition(order, step, actor_user_id=actor_user_id, trigger="production_progress")
    return list(path)


def update_item_production_status(
    order_id: int,
    item_id: int,
    production_status: str | None,
    *,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> tuple[OrderItem, Order, list[str]]:
    """
    Change one item's production status (and/or notes), then apply
    production-driven promotion. Returns (item, order, promoted_steps).
    """
    if production_status is not None and production_status not in PRODUCTION_STATUSES:
        raise ValidationError(f"production_status must be one of: {', '.join(PRODUCTION_STATUSES)}")

    def _op():
        begin_write_transaction()
        order = _load_order_locked(order_id)
        item = db.session.query(OrderItem).filter_by(id=item_id, order_id=order.id).first()
        if item is None:
            raise NotFound(f"Order item {item_id} not found")

        old_status = item.production_status
        if notes is not None:
            item.production_notes = notes

        steps: list[str] = []
        if production_status is not None and production_status != old_status:
            item.production_status = production_status
            if production_status == "COMPLETED":
                item.completed_at = utcnow()
            elif old_status == "COMPLETED":
                item.completed_at = None

            product_name = item.product.name if item.product else f"product {item.product_id}"
            append_order_event(
                order_id=order.id,
                event_type="item.production_status_changed",
                description=f'Production status of "{product_name}" changed to {production_status}',
                payload={
                    "item_id": item.id,
                    "product_name": product_name,
                    "old_status": old_status,
                    "new_status": production_status,
                    "notes": notes,
                },
                actor_user_id=actor_user_id,
            )
            steps = auto_promote_order(order, actor_user_id=actor_user_id)

        db.session.commit()
        return item, order, steps

    item, order, steps = run_with_retry(_op)
    if steps:
        dispatch_after_commit(order_id=order.id)
    return item, order, steps
