"""Read-only stock availability pre-check."""

from storefront.models import Product, ProductVariant
from storefront.services.reservation_service import validate_stock_availability


class TestStockAvailability:

    def test_valid_request(self, db_session, variant):
        check = validate_stock_availability([{"variant_id": variant.id, "quantity": 3}])
        assert check.valid is True
        assert check.errors == []

    def test_insufficient_stock_message(self, db_session, variant):
        check = validate_stock_availability([{"variant_id": variant.id, "quantity": 5}])
        assert check.valid is False
        assert check.errors == [
            "Insufficient stock for Camiseta personalizada (SKU-001). Available: 3, requested: 5"
        ]

    def test_repeated_variant_uses_running_total(self, db_session, variant):
        check = validate_stock_availability([
            {"variant_id": variant.id, "quantity": 2},
            {"variant_id": variant.id, "quantity": 2},
        ])
        assert check.valid is False
        assert check.errors == [
            "Insufficient stock for Camiseta personalizada (SKU-001). Available: 3, requested: 4"
        ]

    def test_unknown_variant(self, db_session):
        check = validate_stock_availability([{"variant_id": 424242, "quantity": 1}])
        assert check.errors == ["Variant 424242 not found"]

    def test_inactive_variant(self, db_session, variant):
        variant.is_active = False
        db_session.commit()
        check = validate_stock_availability([{"variant_id": variant.id, "quantity": 1}])
        assert check.errors == ["Camiseta personalizada (SKU-001) is not available"]

    def test_inactive_product_blocks_its_variants(self, db_session, product, variant):
        product.is_active = False
        db_session.commit()
        check = validate_stock_availability([{"variant_id": variant.id, "quantity": 1}])
        assert check.valid is False

    def test_product_without_variant(self, db_session, product):
        check = validate_stock_availability([{"product_id": product.id, "quantity": 50}])
        assert check.valid is True

    def test_unknown_and_inactive_products(self, db_session):
        inactive = Product(name="Taza retirada", slug="taza", base_price_cents=900, is_active=False)
        db_session.add(inactive)
        db_session.commit()

        check = validate_stock_availability([
            {"product_id": 777, "quantity": 1},
            {"product_id": inactive.id, "quantity": 1},
        ])
        assert check.errors == ["Product 777 not found", "Taza retirada is not available"]

    def test_collects_every_error(self, db_session, variant, second_variant):
        check = validate_stock_availability([
            {"variant_id": variant.id, "quantity": 9},
            {"variant_id": second_variant.id, "quantity": 11},
        ])
        assert len(check.errors) == 2

    def test_does_not_modify_stock(self, db_session, variant):
        validate_stock_availability([{"variant_id": variant.id, "quantity": 2}])
        assert db_session.get(ProductVariant, variant.id, populate_existing=True).stock == 3
