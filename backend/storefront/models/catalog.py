from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    Catalog administration lives outside the order engine; orders read the
    name, base price and active flag from here.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("slug", name="uq_products_slug"),
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    base_price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "base_price_cents": self.base_price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductVariant(db.Model):
    """
    A sellable SKU (size/color/material combination of a product).

    STOCK: `stock` is the current on-hand count and the only hot shared
    mutable value in the engine. It is written exclusively by
    stock_ledger_service, which appends a StockMovement for every change.
    The check constraint is the last line of defence against negative stock.

    SKU is globally unique (not per product).
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_product_variants_sku"),
        db.CheckConstraint("stock >= 0", name="ck_product_variants_stock_non_negative"),
        db.Index("ix_product_variants_product_active", "product_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=True)
    size = db.Column(db.String(32), nullable=True)
    color = db.Column(db.String(32), nullable=True)
    material = db.Column(db.String(64), nullable=True)

    # Optional price override; falls back to Product.base_price_cents
    price_cents = db.Column(db.Integer, nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("variants", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def effective_price_cents(self) -> int:
        if self.price_cents is not None:
            return self.price_cents
        return self.product.base_price_cents

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} sku={self.sku!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "sku": self.sku,
            "name": self.name,
            "size": self.size,
            "color": self.color,
            "material": self.material,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class ShippingMethod(db.Model):
    """Named shipping option with a flat price, looked up by name at checkout."""
    __tablename__ = "shipping_methods"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_shipping_methods_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    estimated_days = db.Column(db.String(64), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "estimated_days": self.estimated_days,
            "is_active": self.is_active,
        }


class Address(db.Model):
    """Saved customer address referenced by orders."""
    __tablename__ = "addresses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=True)
    street = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(128), nullable=False)
    postal_code = db.Column(db.String(32), nullable=False)
    state = db.Column(db.String(128), nullable=True)
    country = db.Column(db.String(64), nullable=False, default="ES")
    phone = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("addresses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "street": self.street,
            "city": self.city,
            "postal_code": self.postal_code,
            "state": self.state,
            "country": self.country,
            "phone": self.phone,
        }


class Setting(db.Model):
    """
    Key-value store settings (company identity for invoices, etc.).

    Values are JSON so structured settings (an address) need no extra table.
    """
    __tablename__ = "settings"
    __table_args__ = (
        db.UniqueConstraint("key", name="uq_settings_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False)
    value = db.Column(db.JSON, nullable=True)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }
