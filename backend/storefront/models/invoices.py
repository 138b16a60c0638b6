from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class Invoice(db.Model):
    """
    Immutable financial snapshot of an order.

    ONE-TO-ONE: order_id is unique; an order is invoiced at most once.

    SNAPSHOT: amounts, customer data, company identity and line items are
    copied at issuance, so later edits to the order, products or company
    settings never change a printed invoice. Only status (and paid_at /
    notes) change afterwards.

    STATUS: PENDING, PAID, OVERDUE, CANCELLED
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        db.UniqueConstraint("order_id", name="uq_invoices_order_id"),
        db.Index("ix_invoices_status_issue", "status", "issue_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    issue_date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Customer snapshot
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(64), nullable=True)
    billing_address = db.Column(db.JSON, nullable=True)

    # Company snapshot
    company_name = db.Column(db.String(255), nullable=False)
    company_address = db.Column(db.JSON, nullable=True)
    company_tax_id = db.Column(db.String(64), nullable=True)
    company_phone = db.Column(db.String(64), nullable=True)
    company_email = db.Column(db.String(255), nullable=True)

    # Serialized copy of the order items at issuance
    line_items = db.Column(db.JSON, nullable=False)

    payment_terms = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("invoice", uselist=False, lazy=True))

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} order_id={self.order_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "shipping_cents": self.shipping_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "issue_date": to_utc_z(self.issue_date),
            "due_date": to_utc_z(self.due_date),
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "billing_address": self.billing_address,
            "company_name": self.company_name,
            "company_address": self.company_address,
            "company_tax_id": self.company_tax_id,
            "company_phone": self.company_phone,
            "company_email": self.company_email,
            "line_items": self.line_items,
            "payment_terms": self.payment_terms,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
