# Overview: Append-only order timeline.

from __future__ import annotations

from ..extensions import db
from ..models import OrderEvent
"""
Order timeline invariants (authoritative)

- Append-only: no updates or deletes of existing events (rows only go away
  with their order).
- Events are written inside the same DB transaction as the change they
  record; no commit here.
"""


def append_order_event(
    *,
    order_id: int,
    event_type: str,
    description: str,
    payload: dict | None = None,
    actor_user_id: int | None = None,
) -> OrderEvent:
    ev = OrderEvent(
        order_id=order_id,
        event_type=event_type,
        description=description[:255],
        payload=payload,
        actor_user_id=actor_user_id,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_order_events(order_id: int) -> list[OrderEvent]:
    return (
        db.session.query(OrderEvent)
        .filter_by(order_id=order_id)
        .order_by(OrderEvent.occurred_at.asc(), OrderEvent.id.asc())
        .all()
    )
