from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class OutboxEvent(db.Model):
    """
    Notification intent recorded in the same transaction as the business change.

    A crash between commit and delivery leaves the row PENDING, so the
    notification is retried by the next drain instead of being lost.

    STATUS: PENDING -> SENT, or PENDING -> FAILED after OUTBOX_MAX_ATTEMPTS.
    """
    __tablename__ = "outbox_events"
    __table_args__ = (
        db.Index("ix_outbox_events_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)

    # Plain id (no FK): intents survive order deletion
    order_id = db.Column(db.Integer, nullable=True, index=True)
    payload = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING")
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "order_id": self.order_id,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
        }
