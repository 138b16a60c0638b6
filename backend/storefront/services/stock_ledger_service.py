# Overview: Stock ledger; the only writer of ProductVariant.stock.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, update
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import ProductVariant, StockMovement
from ..errors import NotFound, InsufficientStock
from ..validation import ValidationError, enforce_rules_stock_adjust, enforce_rules_stock_movement
from .concurrency import lock_for_update, run_with_retry, begin_write_transaction
"""
Stock ledger invariants (authoritative)

Stock model:
- ProductVariant.stock is the current on-hand count; it never goes negative
  (checked in the UPDATE itself and by a DB check constraint).
- Every change appends exactly one StockMovement in the same DB transaction.
- Movements are append-only; corrections are new movements.
- stock_after == stock_before + signed(quantity) for every row, and rows for
  one variant chain (row n's stock_before == row n-1's stock_after).

Concurrency:
- debit() is a single compare-and-swap UPDATE
  (stock = stock - q WHERE stock >= q): the check and the write cannot be
  separated, so concurrent checkouts cannot oversell.
- debit/credit/adjust run inside the caller's transaction and never commit.
  adjust_stock() and record_movement() are the committed entry points.
- version_id is bumped on every stock write so ORM holders of a stale
  variant fail with StaleDataError instead of overwriting stock.
"""


def _require_positive_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    return quantity


def _reload_variant(variant_id: int) -> ProductVariant | None:
    # populate_existing: the UPDATE bypassed the identity map
    return db.session.get(ProductVariant, variant_id, populate_existing=True)


def _append_movement(
    *,
    variant: ProductVariant,
    movement_type: str,
    quantity: int,
    stock_before: int,
    stock_after: int,
    reason: str | None,
    order_id: int | None,
    actor_user_id: int | None,
) -> StockMovement:
    movement = StockMovement(
        variant_id=variant.id,
        type=movement_type,
        quantity=quantity,
        stock_before=stock_before,
        stock_after=stock_after,
        reason=reason,
        order_id=order_id,
        actor_user_id=actor_user_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def debit(
    variant_id: int,
    quantity: int,
    reason: str | None,
    *,
    order_id: int | None = None,
    actor_user_id: int | None = None,
) -> StockMovement:
    """
    Take `quantity` units out of stock and append an OUT movement.

    Raises NotFound for an unknown variant and InsufficientStock when the
    variant holds fewer than `quantity` units at debit time.
    """
    quantity = _require_positive_quantity(quantity)

    stmt = (
        update(ProductVariant)
        .where(ProductVariant.id == variant_id, ProductVariant.stock >= quantity)
        .values(
            stock=ProductVariant.stock - quantity,
            version_id=ProductVariant.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    variant = _reload_variant(variant_id)
    if variant is None:
        raise NotFound(f"Variant {variant_id} not found")
    if not result.rowcount:
        raise InsufficientStock(variant.id, variant.sku, variant.stock, quantity)

    return _append_movement(
        variant=variant,
        movement_type="OUT",
        quantity=quantity,
        stock_before=variant.stock + quantity,
        stock_after=variant.stock,
        reason=reason,
        order_id=order_id,
        actor_user_id=actor_user_id,
    )


def credit(
    variant_id: int,
    quantity: int,
    reason: str | None,
    *,
    movement_type: str = "IN",
    order_id: int | None = None,
    actor_user_id: int | None = None,
) -> StockMovement:
    """Put `quantity` units back into stock (IN or RETURN movement)."""
    if movement_type not in ("IN", "RETURN"):
        raise ValidationError("credit movement_type must be IN or RETURN")
    quantity = _require_positive_quantity(quantity)

    stmt = (
        update(ProductVariant)
        .where(ProductVariant.id == variant_id)
        .values(
            stock=ProductVariant.stock + quantity,
            version_id=ProductVariant.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise NotFound(f"Variant {variant_id} not found")

    variant = _reload_variant(variant_id)
    return _append_movement(
        variant=variant,
        movement_type=movement_type,
        quantity=quantity,
        stock_before=variant.stock - quantity,
        stock_after=variant.stock,
        reason=reason,
        order_id=order_id,
        actor_user_id=actor_user_id,
    )


def adjust(
    variant_id: int,
    new_stock: int,
    reason: str | None,
    *,
    actor_user_id: int | None = None,
) -> StockMovement | None:
    """
    Set stock to an absolute value and append an ADJUSTMENT of abs(delta).

    Returns None (and writes nothing) when stock already equals new_stock.
    """
    new_stock = enforce_rules_stock_adjust(new_stock)

    variant = lock_for_update(
        db.session.query(ProductVariant)
        .filter_by(id=variant_id)
        .populate_existing()
    ).first()
    if variant is None:
        raise NotFound(f"Variant {variant_id} not found")

    stock_before = variant.stock
    delta = new_stock - stock_before
    if delta == 0:
        return None

    stmt = (
        update(ProductVariant)
        .where(ProductVariant.id == variant_id, ProductVariant.stock == stock_before)
        .values(stock=new_stock, version_id=ProductVariant.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    if not db.session.execute(stmt).rowcount:
        raise StaleDataError(f"Stock of variant {variant_id} changed during adjustment")

    variant = _reload_variant(variant_id)
    return _append_movement(
        variant=variant,
        movement_type="ADJUSTMENT",
        quantity=abs(delta),
        stock_before=stock_before,
        stock_after=new_stock,
        reason=reason,
        order_id=None,
        actor_user_id=actor_user_id,
    )


def adjust_stock(
    variant_id: int,
    new_stock: int,
    reason: str | None,
    *,
    actor_user_id: int | None = None,
) -> tuple[ProductVariant, StockMovement | None]:
    """Committed stock adjustment. Returns (variant, movement or None)."""
    def _op():
        begin_write_transaction()
        movement = adjust(variant_id, new_stock, reason, actor_user_id=actor_user_id)
        variant = db.session.get(ProductVariant, variant_id)
        db.session.commit()
        return variant, movement

    return run_with_retry(_op)


def record_movement(
    variant_id: int,
    movement_type: str,
    quantity: int,
    reason: str | None,
    *,
    actor_user_id: int | None = None,
    order_id: int | None = None,
) -> tuple[ProductVariant, StockMovement | None]:
    """
    Committed manual movement.

    IN/RETURN credit, OUT debits. For ADJUSTMENT, quantity is the new
    absolute stock (the counted value), not a delta.
    """
    enforce_rules_stock_movement({"type": movement_type, "quantity": quantity})

    def _op():
        begin_write_transaction()
        if movement_type == "OUT":
            movement = debit(variant_id, quantity, reason, order_id=order_id, actor_user_id=actor_user_id)
        elif movement_type == "ADJUSTMENT":
            movement = adjust(variant_id, quantity, reason, actor_user_id=actor_user_id)
        else:
            movement = credit(
                variant_id,
                quantity,
                reason,
                movement_type=movement_type,
                order_id=order_id,
                actor_user_id=actor_user_id,
            )
        variant = db.session.get(ProductVariant, variant_id)
        db.session.commit()
        return variant, movement

    return run_with_retry(_op)


def _filtered_movements(
    *,
    variant_id: int | None = None,
    movement_type: str | None = None,
    actor_user_id: int | None = None,
    order_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
):
    q = db.session.query(StockMovement)
    if variant_id is not None:
        q = q.filter(StockMovement.variant_id == variant_id)
    if movement_type:
        q = q.filter(StockMovement.type == movement_type)
    if actor_user_id is not None:
        q = q.filter(StockMovement.actor_user_id == actor_user_id)
    if order_id is not None:
        q = q.filter(StockMovement.order_id == order_id)
    if date_from is not None:
        q = q.filter(StockMovement.created_at >= date_from)
    if date_to is not None:
        q = q.filter(StockMovement.created_at <= date_to)
    return q


def list_movements(*, page: int = 1, per_page: int = 50, **filters) -> tuple[list[StockMovement], int]:
    """Newest first. Returns (movements, total matching)."""
    page = max(page, 1)
    per_page = min(max(per_page, 1), 200)

    q = _filtered_movements(**filters)
    total = q.count()
    movements = (
        q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return movements, total


def movement_summary(**filters) -> dict:
    """Per-type movement count and total quantity for the same filters as list_movements."""
    filtered = _filtered_movements(**filters).subquery()
    rows = (
        db.session.query(
            filtered.c.type,
            func.count(filtered.c.id),
            func.coalesce(func.sum(filtered.c.quantity), 0),
        )
        .group_by(filtered.c.type)
        .all()
    )
    summary = {t: {"count": 0, "quantity": 0} for t in ("IN", "OUT", "ADJUSTMENT", "RETURN")}
    for movement_type, count, quantity in rows:
        summary[movement_type] = {"count": int(count), "quantity": int(quantity)}
    return summary


def reconcile_variant(variant_id: int) -> dict:
    """
    Replay a variant's movement history against its stored stock.

    ledger_stock is the opening stock (first movement's stock_before) plus
    the signed sum of every movement. consistent is True when it equals the
    stored stock and no row breaks the before/after chain.
    """
    variant = db.session.get(ProductVariant, variant_id)
    if variant is None:
        raise NotFound(f"Variant {variant_id} not found")

    movements = (
        db.session.query(StockMovement)
        .filter_by(variant_id=variant_id)
        .order_by(StockMovement.id.asc())
        .all()
    )

    if not movements:
        return {
            "variant_id": variant.id,
            "sku": variant.sku,
            "stock": variant.stock,
            "opening_stock": variant.stock,
            "ledger_stock": variant.stock,
            "movement_count": 0,
            "chain_breaks": [],
            "consistent": True,
        }

    opening = movements[0].stock_before
    running = opening
    chain_breaks = []
    for movement in movements:
        if movement.stock_before != running:
            chain_breaks.append(movement.id)
        elif movement.stock_after != movement.stock_before + movement.signed_quantity:
            chain_breaks.append(movement.id)
        running = movement.stock_before + movement.signed_quantity

    ledger_stock = opening + sum(m.signed_quantity for m in movements)
    return {
        "variant_id": variant.id,
        "sku": variant.sku,
        "stock": variant.stock,
        "opening_stock": opening,
        "ledger_stock": ledger_stock,
        "movement_count": len(movements),
        "chain_breaks": chain_breaks,
        "consistent": ledger_stock == variant.stock and not chain_breaks,
    }
