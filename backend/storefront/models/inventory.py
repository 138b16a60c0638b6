from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class StockMovement(db.Model):
    """
    Append-only stock ledger row.

    One row per change of ProductVariant.stock, written in the same DB
    transaction as the change. Rows are never updated or deleted; a mistake
    is corrected by a new movement.

    MOVEMENT TYPES (quantity is always positive):
    - IN:         stock received or released back (e.g. order cancellation)
    - OUT:        stock consumed (order reservation)
    - RETURN:     customer return put back on the shelf
    - ADJUSTMENT: manual correction; direction is stock_after - stock_before

    stock_before / stock_after make every row self-describing so stock can
    be replayed from history for audit (see stock_ledger_service.reconcile_variant).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.Index("ix_stock_movements_variant_created", "variant_id", "created_at"),
        db.Index("ix_stock_movements_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)

    # Order that caused the movement. Plain id (no FK): the ledger outlives deleted orders.
    order_id = db.Column(db.Integer, nullable=True, index=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    variant = db.relationship("ProductVariant", backref=db.backref("movements", lazy=True))

    @property
    def signed_quantity(self) -> int:
        if self.type in ("IN", "RETURN"):
            return self.quantity
        if self.type == "OUT":
            return -self.quantity
        # ADJUSTMENT
        return self.quantity if self.stock_after >= self.stock_before else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "sku": self.variant.sku if self.variant else None,
            "type": self.type,
            "quantity": self.quantity,
            "signed_quantity": self.signed_quantity,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "reason": self.reason,
            "order_id": self.order_id,
            "actor_user_id": self.actor_user_id,
            "created_at": to_utc_z(self.created_at),
        }
