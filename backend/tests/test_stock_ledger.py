"""
Stock ledger.

Verifies:
- debit/credit/adjust change stock and append exactly one movement each
- A debit that would make stock negative raises InsufficientStock and
  leaves stock untouched
- Movements chain (stock_before/stock_after) and replay to the stored stock
- Listing, filtering and summaries of the movement history
"""

import pytest
from sqlalchemy import update

from storefront.errors import InsufficientStock, NotFound
from storefront.extensions import db
from storefront.models import ProductVariant, StockMovement
from storefront.services import stock_ledger_service
from storefront.services.concurrency import begin_write_transaction
from storefront.validation import ValidationError


def _stock(variant_id):
    return db.session.get(ProductVariant, variant_id, populate_existing=True).stock


class TestDebit:

    def test_debit_decrements_and_records_out(self, db_session, variant):
        begin_write_transaction()
        movement = stock_ledger_service.debit(variant.id, 2, "Reserved by order X", order_id=42)
        db_session.commit()

        assert _stock(variant.id) == 1
        assert movement.type == "OUT"
        assert movement.quantity == 2
        assert movement.stock_before == 3
        assert movement.stock_after == 1
        assert movement.order_id == 42
        assert movement.signed_quantity == -2

    def test_debit_exact_stock_reaches_zero(self, db_session, variant):
        begin_write_transaction()
        stock_ledger_service.debit(variant.id, 3, None)
        db_session.commit()
        assert _stock(variant.id) == 0

    def test_insufficient_stock_changes_nothing(self, db_session, variant):
        begin_write_transaction()
        with pytest.raises(InsufficientStock) as exc_info:
            stock_ledger_service.debit(variant.id, 4, None)
        db_session.rollback()

        err = exc_info.value
        assert err.available == 3
        assert err.requested == 4
        assert err.sku == "SKU-001"
        assert err.status_code == 400
        assert _stock(variant.id) == 3
        assert db_session.query(StockMovement).count() == 0

    def test_unknown_variant(self, db_session):
        begin_write_transaction()
        with pytest.raises(NotFound):
            stock_ledger_service.debit(9999, 1, None)
        db_session.rollback()

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_rejects_non_positive_quantity(self, db_session, variant, quantity):
        with pytest.raises(ValidationError):
            stock_ledger_service.debit(variant.id, quantity, None)

    def test_debit_bumps_version(self, db_session, variant):
        version_before = variant.version_id
        begin_write_transaction()
        stock_ledger_service.debit(variant.id, 1, None)
        db_session.commit()
        assert db.session.get(ProductVariant, variant.id, populate_existing=True).version_id == version_before + 1


class TestCredit:

    def test_credit_in(self, db_session, variant):
        begin_write_transaction()
        movement = stock_ledger_service.credit(variant.id, 5, "Restock")
        db_session.commit()

        assert _stock(variant.id) == 8
        assert movement.type == "IN"
        assert (movement.stock_before, movement.stock_after) == (3, 8)

    def test_credit_return(self, db_session, variant):
        begin_write_transaction()
        movement = stock_ledger_service.credit(variant.id, 1, "Customer return", movement_type="RETURN")
        db_session.commit()
        assert movement.type == "RETURN"
        assert _stock(variant.id) == 4

    def test_credit_rejects_out_type(self, db_session, variant):
        with pytest.raises(ValidationError):
            stock_ledger_service.credit(variant.id, 1, None, movement_type="OUT")

    def test_credit_unknown_variant(self, db_session):
        begin_write_transaction()
        with pytest.raises(NotFound):
            stock_ledger_service.credit(9999, 1, None)
        db_session.rollback()


class TestAdjust:

    def test_adjust_down(self, admin_user, variant):
        variant_out, movement = stock_ledger_service.adjust_stock(
            variant.id, 1, "Inventory count", actor_user_id=admin_user.id
        )
        assert variant_out.stock == 1
        assert movement.type == "ADJUSTMENT"
        assert movement.quantity == 2
        assert movement.signed_quantity == -2
        assert movement.actor_user_id == admin_user.id

    def test_adjust_up(self, db_session, variant):
        _, movement = stock_ledger_service.adjust_stock(variant.id, 10, "Found a box")
        assert movement.quantity == 7
        assert movement.signed_quantity == 7
        assert _stock(variant.id) == 10

    def test_adjust_after_read_in_open_transaction(self, db_session, variant):
        assert db_session.query(StockMovement).count() == 0
        assert db_session().in_transaction()

        variant_out, movement = stock_ledger_service.adjust_stock(variant.id, 10, "Recount")

        assert variant_out.stock == 10
        assert movement.quantity == 7
        assert _stock(variant.id) == 10

    def test_adjust_to_same_value_is_a_noop(self, db_session, variant):
        variant_out, movement = stock_ledger_service.adjust_stock(variant.id, 3, "Recount")
        assert movement is None
        assert variant_out.stock == 3
        assert db_session.query(StockMovement).count() == 0

    @pytest.mark.parametrize("new_stock", [-1, "5", 2.5, None])
    def test_adjust_rejects_invalid_values(self, db_session, variant, new_stock):
        with pytest.raises(ValidationError):
            stock_ledger_service.adjust_stock(variant.id, new_stock, None)
        assert _stock(variant.id) == 3

    def test_adjust_unknown_variant(self, db_session):
        with pytest.raises(NotFound):
            stock_ledger_service.adjust_stock(9999, 1, None)


class TestRecordMovement:

    def test_out_uses_compare_and_swap(self, db_session, variant):
        with pytest.raises(InsufficientStock):
            stock_ledger_service.record_movement(variant.id, "OUT", 5, "Damaged")
        assert _stock(variant.id) == 3

    def test_adjustment_quantity_is_absolute(self, db_session, variant):
        variant_out, movement = stock_ledger_service.record_movement(variant.id, "ADJUSTMENT", 0, "Count")
        assert variant_out.stock == 0
        assert movement.quantity == 3

    def test_unknown_type(self, db_session, variant):
        with pytest.raises(ValidationError):
            stock_ledger_service.record_movement(variant.id, "GIFT", 1, None)


class TestReconcile:

    def test_consistent_history(self, db_session, variant):
        stock_ledger_service.record_movement(variant.id, "IN", 5, "Restock")
        stock_ledger_service.record_movement(variant.id, "OUT", 2, "Sample")
        stock_ledger_service.record_movement(variant.id, "ADJUSTMENT", 4, "Count")
        stock_ledger_service.record_movement(variant.id, "RETURN", 1, "Return")

        report = stock_ledger_service.reconcile_variant(variant.id)
        assert report["consistent"] is True
        assert report["opening_stock"] == 3
        assert report["ledger_stock"] == report["stock"] == 5
        assert report["movement_count"] == 4
        assert report["chain_breaks"] == []

    def test_no_movements(self, db_session, variant):
        report = stock_ledger_service.reconcile_variant(variant.id)
        assert report["consistent"] is True
        assert report["movement_count"] == 0

    def test_detects_stock_written_outside_the_ledger(self, db_session, variant):
        stock_ledger_service.record_movement(variant.id, "IN", 2, "Restock")
        db_session.execute(update(ProductVariant).where(ProductVariant.id == variant.id).values(stock=99))
        db_session.commit()

        report = stock_ledger_service.reconcile_variant(variant.id)
        assert report["consistent"] is False
        assert report["ledger_stock"] == 5
        assert report["stock"] == 99

    def test_unknown_variant(self, db_session):
        with pytest.raises(NotFound):
            stock_ledger_service.reconcile_variant(9999)


class TestListMovements:

    def test_filters_and_summary(self, db_session, variant, second_variant):
        stock_ledger_service.record_movement(variant.id, "IN", 5, "Restock")
        stock_ledger_service.record_movement(variant.id, "OUT", 2, "Sample", order_id=7)
        stock_ledger_service.record_movement(second_variant.id, "OUT", 1, "Sample")

        movements, total = stock_ledger_service.list_movements(variant_id=variant.id)
        assert total == 2
        assert [m.type for m in movements] == ["OUT", "IN"]

        movements, total = stock_ledger_service.list_movements(order_id=7)
        assert total == 1

        summary = stock_ledger_service.movement_summary(movement_type="OUT")
        assert summary["OUT"] == {"count": 2, "quantity": 3}
        assert summary["IN"] == {"count": 0, "quantity": 0}

    def test_pagination(self, db_session, second_variant):
        for _ in range(5):
            stock_ledger_service.record_movement(second_variant.id, "IN", 1, None)

        page_one, total = stock_ledger_service.list_movements(page=1, per_page=2)
        page_three, _ = stock_ledger_service.list_movements(page=3, per_page=2)
        assert total == 5
        assert len(page_one) == 2
        assert len(page_three) == 1
