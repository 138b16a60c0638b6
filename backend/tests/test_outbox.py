"""
Notification outbox.

Verifies:
- Intents commit and roll back with the change that recorded them
- Delivery is at-least-once with bounded retries
- A delivery failure never reaches the caller
"""

from storefront.models import OutboxEvent
from storefront.services import notification_service


def _add_event(db_session, event_type="order.created", order_id=1):
    ev = notification_service.record_event(event_type, {"order_id": order_id}, order_id=order_id)
    db_session.commit()
    return ev.id


class TestRecordEvent:

    def test_rolled_back_with_the_transaction(self, db_session):
        notification_service.record_event("order.created", {"order_id": 1}, order_id=1)
        db_session.rollback()
        assert db_session.query(OutboxEvent).count() == 0

    def test_committed_as_pending(self, db_session):
        event_id = _add_event(db_session)
        ev = db_session.get(OutboxEvent, event_id)
        assert ev.status == "PENDING"
        assert ev.attempts == 0


class TestDispatch:

    def test_delivers_to_notifier(self, app, db_session):
        delivered = []
        app.config["NOTIFIER"] = lambda event_type, payload: delivered.append((event_type, payload))
        event_id = _add_event(db_session)

        counts = notification_service.dispatch_pending()

        assert counts == {"sent": 1, "failed": 0, "retry": 0, "skipped": 0}
        assert delivered == [("order.created", {"order_id": 1})]
        ev = db_session.get(OutboxEvent, event_id, populate_existing=True)
        assert ev.status == "SENT"
        assert ev.processed_at is not None

    def test_sent_events_are_not_redelivered(self, app, db_session):
        delivered = []
        app.config["NOTIFIER"] = lambda event_type, payload: delivered.append(event_type)
        _add_event(db_session)

        notification_service.dispatch_pending()
        notification_service.dispatch_pending()

        assert delivered == ["order.created"]

    def test_failure_is_retried_then_marked_failed(self, app, db_session):
        def broken(event_type, payload):
            raise ConnectionError("SMTP down")

        app.config["NOTIFIER"] = broken
        app.config["OUTBOX_MAX_ATTEMPTS"] = 3
        try:
            event_id = _add_event(db_session)

            first = notification_service.dispatch_pending()
            second = notification_service.dispatch_pending()
            third = notification_service.dispatch_pending()
            fourth = notification_service.dispatch_pending()
        finally:
            app.config["OUTBOX_MAX_ATTEMPTS"] = 5

        assert first["retry"] == 1
        assert second["retry"] == 1
        assert third["failed"] == 1
        assert fourth == {"sent": 0, "failed": 0, "retry": 0, "skipped": 0}

        ev = db_session.get(OutboxEvent, event_id, populate_existing=True)
        assert ev.status == "FAILED"
        assert ev.attempts == 3
        assert "SMTP down" in ev.last_error

    def test_filter_by_order(self, app, db_session):
        delivered = []
        app.config["NOTIFIER"] = lambda event_type, payload: delivered.append(payload["order_id"])
        _add_event(db_session, order_id=1)
        _add_event(db_session, order_id=2)

        notification_service.dispatch_pending(order_id=2)

        assert delivered == [2]

    def test_after_commit_never_raises(self, app, db_session, monkeypatch):
        def exploding_dispatch(**kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(notification_service, "dispatch_pending", exploding_dispatch)
        warnings = notification_service.dispatch_after_commit(order_id=1)
        assert warnings == ["Notification dispatch failed; will be retried"]

    def test_after_commit_reports_undelivered(self, app, db_session):
        def broken(event_type, payload):
            raise ConnectionError("SMTP down")

        app.config["NOTIFIER"] = broken
        _add_event(db_session, order_id=5)

        warnings = notification_service.dispatch_after_commit(order_id=5)
        assert len(warnings) == 1
