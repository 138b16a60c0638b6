"""
Order creation.

Verifies:
- Server-side pricing, totals, order number and initial status
- Stock is debited in the same transaction as the order rows
- A failure on any line leaves no order, no stock change and no consumed number
- Invoice issuance and notification delivery are best-effort after commit
"""

import pytest

from storefront.errors import InsufficientStock, NotFound, OrderEngineError, ValidationFailed
from storefront.extensions import db
from storefront.models import (
    Address,
    DocumentSequence,
    Invoice,
    Order,
    OrderEvent,
    OutboxEvent,
    Product,
    ProductVariant,
    StockMovement,
)
from storefront.services import invoice_service, order_service, order_state_service, stock_ledger_service
from storefront.validation import ValidationError

from conftest import checkout_payload


def _stock(variant_id):
    return db.session.get(ProductVariant, variant_id, populate_existing=True).stock


class TestCreateOrder:

    def test_creates_pending_order_with_server_prices(self, db_session, variant, shipping_methods):
        result = order_service.create_order(checkout_payload(
            {"variant_id": variant.id, "quantity": 2, "unit_price_cents": 1},
            shipping_method="Envío estándar",
        ))
        order = result.order

        assert order.status == "PENDING"
        assert order.payment_status == "PENDING"
        assert order.order_number.startswith("LV")
        assert order.order_number.endswith("-001")
        assert order.subtotal_cents == 5000
        assert order.tax_rate_bps == 2100
        assert order.tax_cents == 1050
        assert order.shipping_cents == 450
        assert order.total_cents == 6500

        item = order.items[0]
        assert item.unit_price_cents == 2500
        assert item.total_price_cents == 5000
        assert item.production_status == "PENDING"

    def test_variant_price_overrides_product_price(self, db_session, second_variant):
        order = order_service.create_order(
            checkout_payload({"variant_id": second_variant.id, "quantity": 1})
        ).order
        assert order.items[0].unit_price_cents == 3000

    def test_product_line_without_variant(self, db_session, product):
        order = order_service.create_order(
            checkout_payload({"product_id": product.id, "quantity": 4})
        ).order
        assert order.subtotal_cents == 10000
        assert order.items[0].variant_id is None
        assert db_session.query(StockMovement).count() == 0

    def test_unknown_or_inactive_shipping_is_free(self, db_session, variant, shipping_methods):
        inactive = order_service.create_order(checkout_payload(
            {"variant_id": variant.id, "quantity": 1}, shipping_method="Envío express",
        )).order
        unknown = order_service.create_order(checkout_payload(
            {"variant_id": variant.id, "quantity": 1}, shipping_method="Drone",
        )).order
        assert inactive.shipping_cents == 0
        assert unknown.shipping_cents == 0

    def test_debits_stock_with_movements(self, db_session, variant, second_variant):
        order = order_service.create_order(checkout_payload(
            {"variant_id": variant.id, "quantity": 2},
            {"variant_id": second_variant.id, "quantity": 5},
        )).order

        assert _stock(variant.id) == 1
        assert _stock(second_variant.id) == 5
        movements = db_session.query(StockMovement).filter_by(order_id=order.id).all()
        assert sorted((m.variant_id, m.type, m.quantity) for m in movements) == sorted([
            (variant.id, "OUT", 2),
            (second_variant.id, "OUT", 5),
        ])
        assert all(m.reason == f"Reserved by order {order.order_number}" for m in movements)

    def test_records_timeline_and_outbox(self, db_session, variant):
        order = order_service.create_order(checkout_payload({"variant_id": variant.id, "quantity": 1})).order

        types = [e.event_type for e in db_session.query(OrderEvent).filter_by(order_id=order.id)]
        assert "order.created" in types
        assert "invoice.issued" in types

        outbox = db_session.query(OutboxEvent).filter_by(order_id=order.id).all()
        assert {e.event_type for e in outbox} == {"order.created", "invoice.issued"}
        assert all(e.status == "SENT" for e in outbox)

    def test_issues_invoice_matching_order(self, db_session, variant):
        result = order_service.create_order(checkout_payload({"variant_id": variant.id, "quantity": 1}))

        assert result.invoice is not None
        assert result.invoice.total_cents == result.order.total_cents
        assert result.invoice.invoice_number.endswith("-0001")
        assert result.warnings == []

    def test_customization_is_stored_as_tagged_union(self, db_session, variant):
        order = order_service.create_order(checkout_payload({
            "variant_id": variant.id,
            "quantity": 1,
            "customization": {"kind": "TEXT", "data": {"text": "Feliz cumpleaños"}},
        })).order
        assert order.items[0].customization == {
            "kind": "TEXT",
            "schema_version": 1,
            "data": {"text": "Feliz cumpleaños", "font": None, "color": None},
        }

    def test_sequential_numbers(self, db_session, second_variant):
        first = order_service.create_order(checkout_payload({"variant_id": second_variant.id, "quantity": 1})).order
        second = order_service.create_order(checkout_payload({"variant_id": second_variant.id, "quantity": 1})).order
        assert first.order_number[:-3] == second.order_number[:-3]
        assert int(second.order_number[-3:]) == int(first.order_number[-3:]) + 1


class TestCreateOrderValidation:

    @pytest.mark.parametrize(
        "payload",
        [
            {"customer_email": "a@b.c", "customer_name": "A", "items": []},
            {"customer_email": "a@b.c", "customer_name": "A"},
            {"customer_name": "A", "items": [{"product_id": 1, "quantity": 1}]},
            {"customer_email": "not-an-email", "customer_name": "A", "items": [{"product_id": 1, "quantity": 1}]},
            {"customer_email": "a@b.c", "customer_name": "A", "items": [{"quantity": 1}]},
            {"customer_email": "a@b.c", "customer_name": "A", "items": [{"product_id": 1, "quantity": 0}]},
            {"customer_email": "a@b.c", "customer_name": "A", "items": [{"product_id": 1, "quantity": 1.5}]},
            {"customer_email": "a@b.c", "customer_name": "A", "items": [{"product_id": 1, "quantity": 1}], "status": "DELIVERED"},
            {"customer_email": "a@b.c", "customer_name": "A", "items": ["x"]},
        ],
    )
    def test_malformed_payload(self, db_session, payload):
        with pytest.raises(ValidationError):
            order_service.create_order(payload)
        assert db_session.query(Order).count() == 0

    def test_insufficient_stock_is_itemized(self, db_session, variant):
        with pytest.raises(ValidationFailed) as exc_info:
            order_service.create_order(checkout_payload({"variant_id": variant.id, "quantity": 5}))

        assert exc_info.value.errors == [
            "Insufficient stock for Camiseta personalizada (SKU-001). Available: 3, requested: 5"
        ]
        assert _stock(variant.id) == 3
        assert db_session.query(Order).count() == 0

    def test_variant_of_another_product(self, db_session, variant):
        other = Product(name="Taza", slug="taza", base_price_cents=900)
        db_session.add(other)
        db_session.commit()

        with pytest.raises(ValidationFailed):
            order_service.create_order(checkout_payload(
                {"variant_id": variant.id, "product_id": other.id, "quantity": 1}
            ))
        assert _stock(variant.id) == 3

    def test_unknown_user(self, db_session, variant):
        with pytest.raises(NotFound):
            order_service.create_order(checkout_payload({"variant_id": variant.id, "quantity": 1}, user_id=999))

    def test_foreign_address(self, db_session, variant, customer_user, staff_user):
        address = Address(user_id=staff_user.id, street="Calle Mayor 1", city="Hellín", postal_code="02400")
        db_session.add(address)
        db_session.commit()

        with pytest.raises(ValidationFailed):
            order_service.create_order(checkout_payload(
                {"variant_id": variant.id, "quantity": 1},
                user_id=customer_user.id,
                address_id=address.id,
            ))

    def test_saved_address_without_user(self, db_session, variant, customer_user):
        address = Address(user_id=customer_user.id, street="Calle Secreta 9", city="Hellín", postal_code="02400")
        db_session.add(address)
        db_session.commit()

        with pytest.raises(ValidationFailed):
            order_service.create_order(checkout_payload(
                {"variant_id": variant.id, "quantity": 1},
                address_id=address.id,
            ))
        assert _stock(variant.id) == 3

    def test_shared_address_without_user(self, db_session, variant):
        address = Address(street="Calle Principal 123", city="Madrid", postal_code="28001")
        db_session.add(address)
        db_session.commit()

        result = order_service.create_order(checkout_payload(
            {"variant_id": variant.id, "quantity": 1},
            address_id=address.id,
        ))
        assert result.order.address_id == address.id
        assert result.invoice.billing_address["city"] == "Madrid"


class TestCreateOrderAtomicity:

    def test_failure_on_later_line_rolls_back_everything(self, db_session, monkeypatch, variant, second_variant):
        real_debit = stock_ledger_service.debit
        calls = {"n": 0}

        def failing_debit(variant_id, quantity, reason, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("disk on fire")
            return real_debit(variant_id, quantity, reason, **kwargs)

        monkeypatch.setattr(stock_ledger_service, "debit", failing_debit)

        with pytest.raises(RuntimeError):
            order_service.create_order(checkout_payload(
                {"variant_id": variant.id, "quantity": 2},
                {"variant_id": second_variant.id, "quantity": 1},
            ))

        assert _stock(variant.id) == 3
        assert _stock(second_variant.id) == 10
        assert db_session.query(Order).count() == 0
        assert db_session.query(StockMovement).count() == 0
        assert db_session.query(OrderEvent).count() == 0
        assert db_session.query(OutboxEvent).count() == 0
        assert db_session.query(DocumentSequence).count() == 0

        monkeypatch.setattr(stock_ledger_service, "debit", real_debit)
        order = order_service.create_order(checkout_payload({"variant_id": variant.id, "quantity": 1})).order
        assert order.order_number.endswith("-001")

    def test_lost_race_at_debit_time(self, db_session, monkeypatch, variant):
        """Stock drained between the pre-check and the debit: the ledger refuses."""
        real_debit = stock_ledger_service.debit

        def drained_debit(variant_id, quantity, reason, **kwargs):
            db.session.execute(
                ProductVariant.__table__.update()
                .where(ProductVariant.id == variant_id)
                .values(stock=0)
            )
            return real_debit(variant_id, quantity, reason, **kwargs)

        monkeypatch.setattr(stock_ledger_service, "debit", drained_debit)

        with pytest.raises(InsufficientStock):
            order_service.create_order(checkout_payload({"variant_id": variant.id, "quantity": 2}))

        assert _stock(variant.id) == 3
        assert db_session.query(Order).count() == 0

    def test_scenario_two_orders_against_stock_of_three(self, db_session, variant):
        first = order_service.create_order(checkout_payload({"variant_id": variant.id, "quantity": 2}))
        assert first.order.status == "PENDING"
        assert _stock(variant.id) == 1

        with pytest.raises(ValidationFailed) as exc_info:
            order_service.create_order(checkout_payload({"variant_id": variant.id, "quantity": 2}))
        assert "Available: 1, requested: 2" in exc_info.value.errors[0]
        assert _stock(variant.id) == 1
        assert db_session.query(Order).count() == 1


class TestPostCommitEffects:

    def test_invoice_failure_keeps_order(self, db_session, monkeypatch, variant):
        def broken_issue(order_id, **kwargs):
            raise RuntimeError("invoice printer jammed")

        monkeypatch.setattr(invoice_service, "issue_invoice", broken_issue)

        result = order_service.create_order(checkout_payload({"variant_id": variant.id, "quantity": 1}))

        assert result.invoice is None
        assert result.order.id is not None
        assert any("Invoice could not be generated" in w for w in result.warnings)
        assert db_session.query(Invoice).count() == 0
        assert _stock(variant.id) == 2

    def test_notifier_failure_keeps_order(self, app, db_session, variant):
        def broken_notifier(event_type, payload):
            raise ConnectionError("SMTP down")

        app.config["NOTIFIER"] = broken_notifier

        result = order_service.create_order(checkout_payload({"variant_id": variant.id, "quantity": 1}))

        assert result.order.status == "PENDING"
        pending = db_session.query(OutboxEvent).filter_by(order_id=result.order.id).all()
        assert pending
        assert all(e.status == "PENDING" and e.attempts == 1 for e in pending)
        assert all("SMTP down" in e.last_error for e in pending)


class TestDeleteOrder:

    def test_delete_pending_releases_stock(self, db_session, placed_order, variant):
        order_id = placed_order.id
        expected_number = placed_order.order_number
        number = order_service.delete_order(order_id)

        assert number == expected_number
        assert db_session.get(Order, order_id) is None
        assert db_session.query(Invoice).filter_by(order_id=order_id).count() == 0
        assert _stock(variant.id) == 3
        release = db_session.query(StockMovement).filter_by(order_id=order_id, type="IN").one()
        assert release.reason == f"Released by deletion of {number}"

    def test_delete_cancelled_does_not_release_twice(self, db_session, placed_order, variant):
        order_state_service.transition_order_status(placed_order.id, "CANCELLED")
        order_service.delete_order(placed_order.id)
        assert _stock(variant.id) == 3

    def test_cannot_delete_confirmed(self, db_session, placed_order):
        order_state_service.transition_order_status(placed_order.id, "CONFIRMED")
        with pytest.raises(OrderEngineError):
            order_service.delete_order(placed_order.id)
        assert db_session.get(Order, placed_order.id) is not None

    def test_paid_invoice_blocks_deletion(self, db_session, placed_order):
        invoice = db_session.query(Invoice).filter_by(order_id=placed_order.id).one()
        invoice_service.update_invoice_status(invoice.id, "PAID")

        with pytest.raises(OrderEngineError):
            order_service.delete_order(placed_order.id)

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFound):
            order_service.delete_order(9999)


class TestListOrders:

    def test_search_status_and_stats(self, db_session, second_variant):
        a = order_service.create_order(checkout_payload(
            {"variant_id": second_variant.id, "quantity": 1}, customer_name="Lucía Pérez",
        )).order
        b = order_service.create_order(checkout_payload(
            {"variant_id": second_variant.id, "quantity": 1}, customer_email="marta@example.com",
        )).order
        order_state_service.transition_order_status(b.id, "CANCELLED")

        orders, total = order_service.list_orders(search="pérez")
        assert [o.id for o in orders] == [a.id]
        orders, total = order_service.list_orders(search="marta@")
        assert [o.id for o in orders] == [b.id]
        orders, total = order_service.list_orders(status="PENDING")
        assert [o.id for o in orders] == [a.id]

        stats = order_service.order_stats()
        assert stats["total_orders"] == 2
        assert stats["today_orders"] == 2
        assert stats["total_revenue_cents"] == a.total_cents
        assert stats["status_counts"] == {"PENDING": 1, "CANCELLED": 1}
