# Overview: Transactional outbox for customer/staff notifications.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import OutboxEvent
from storefront.time_utils import utcnow
"""
Outbox invariants (authoritative)

- record_event() only adds a row to the current transaction. The intent to
  notify commits or rolls back together with the change that caused it.
- dispatch_pending() runs after commit (request path, best-effort) and from
  `flask outbox drain`. Delivery is at-least-once: a row is claimed by
  bumping attempts with a conditional UPDATE, then marked SENT or left
  PENDING with last_error, and FAILED once OUTBOX_MAX_ATTEMPTS is reached.
- A delivery failure never propagates to the caller.
"""


def record_event(event_type: str, payload: dict, *, order_id: int | None = None) -> OutboxEvent:
    ev = OutboxEvent(
        event_type=event_type,
        order_id=order_id,
        payload=payload,
        status="PENDING",
        attempts=0,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def _deliver(event: OutboxEvent) -> None:
    notifier = current_app.config.get("NOTIFIER")
    if notifier is None:
        current_app.logger.info(
            "notify %s order_id=%s payload=%s", event.event_type, event.order_id, event.payload
        )
        return
    notifier(event.event_type, event.payload)


def _claim(event_id: int, seen_attempts: int) -> bool:
    stmt = (
        update(OutboxEvent)
        .where(
            OutboxEvent.id == event_id,
            OutboxEvent.status == "PENDING",
            OutboxEvent.attempts == seen_attempts,
        )
        .values(attempts=OutboxEvent.attempts + 1)
        .execution_options(synchronize_session=False)
    )
    claimed = bool(db.session.execute(stmt).rowcount)
    db.session.commit()
    return claimed


def dispatch_pending(*, limit: int = 100, order_id: int | None = None) -> dict:
    """
    Deliver PENDING outbox events, oldest first.

    Returns counts: {"sent", "failed", "retry", "skipped"}.
    """
    max_attempts = current_app.config.get("OUTBOX_MAX_ATTEMPTS", 5)
    counts = {"sent": 0, "failed": 0, "retry": 0, "skipped": 0}

    q = db.session.query(OutboxEvent.id, OutboxEvent.attempts).filter_by(status="PENDING")
    if order_id is not None:
        q = q.filter_by(order_id=order_id)
    pending = q.order_by(OutboxEvent.id.asc()).limit(limit).all()
    db.session.commit()

    for event_id, attempts in pending:
        if not _claim(event_id, attempts):
            counts["skipped"] += 1
            continue

        event = db.session.get(OutboxEvent, event_id, populate_existing=True)
        try:
            _deliver(event)
        except Exception as exc:
            current_app.logger.warning(
                "Notification %s (%s) failed on attempt %s: %s",
                event.id, event.event_type, event.attempts, exc,
            )
            event.last_error = str(exc)[:512]
            if event.attempts >= max_attempts:
                event.status = "FAILED"
                event.processed_at = utcnow()
                counts["failed"] += 1
            else:
                counts["retry"] += 1
        else:
            event.status = "SENT"
            event.processed_at = utcnow()
            event.last_error = None
            counts["sent"] += 1
        db.session.commit()

    return counts


def dispatch_after_commit(*, order_id: int | None = None) -> list[str]:
    """
    Best-effort drain on the request path. Never raises; the committed
    change stands and undelivered rows stay PENDING for the CLI drain.

    Returns warning messages for the caller's response metadata.
    """
    try:
        counts = dispatch_pending(order_id=order_id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Outbox dispatch failed for order %s", order_id)
        return ["Notification dispatch failed; will be retried"]
    if counts["retry"] or counts["failed"]:
        return ["Some notifications could not be delivered; will be retried"]
    return []
