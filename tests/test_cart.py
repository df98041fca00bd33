import uuid
from decimal import Decimal

import pytest

from nearmart.core.errors import (
    CrossRetailerConflictError,
    InvalidArgumentError,
    NotFoundError,
    UnavailableError,
)
from nearmart.core.pricing import compute_totals
from nearmart.services.cart_service import CartService
from nearmart.services.catalog_service import CatalogService

from tests.conftest import make_product


class TestAddItem:

    async def test_cart_created_lazily(self, db, customer):
        cart = await CartService(db).get_cart(customer.id)
        assert cart.customer_id == customer.id
        assert cart.items == []
        assert cart.retailer_id is None

    async def test_add_captures_price_and_snapshot(self, db, customer, product_a):
        cart = await CartService(db).add_item(customer.id, product_a.id, 2)

        assert len(cart.items) == 1
        line = cart.items[0]
        assert line.quantity == 2
        assert line.unit_price == Decimal("2.99")
        assert line.product_name == "Apples"
        assert line.product_image == "https://img.example.com/apples.jpg"
        assert cart.retailer_id == product_a.retailer_id

    async def test_re_add_merges_line_and_refreshes_price(self, db, retailer, customer, product_a):
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 2)
        await CatalogService(db).update_product(retailer.id, product_a.id, {"price": Decimal("3.49")})

        cart = await service.add_item(customer.id, product_a.id, 3)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5
        assert cart.items[0].unit_price == Decimal("3.49")

    async def test_unknown_product(self, db, customer):
        with pytest.raises(NotFoundError):
            await CartService(db).add_item(customer.id, uuid.uuid4(), 1)

    async def test_unavailable_product(self, db, retailer, customer):
        hidden = await make_product(db, retailer, name="Hidden", is_available=False)
        with pytest.raises(UnavailableError):
            await CartService(db).add_item(customer.id, hidden.id, 1)

    async def test_quantity_above_stock(self, db, customer, product_b):
        with pytest.raises(UnavailableError) as exc:
            await CartService(db).add_item(customer.id, product_b.id, 6)
        assert exc.value.details["available"] == 5

    async def test_rejects_zero_quantity(self, db, customer, product_a):
        with pytest.raises(InvalidArgumentError):
            await CartService(db).add_item(customer.id, product_a.id, 0)

    async def test_cross_retailer_conflict_leaves_cart_unchanged(
        self, db, customer, product_a, other_retailer
    ):
        foreign = await make_product(db, other_retailer, name="Cheese", price="4.25")
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 1)

        with pytest.raises(CrossRetailerConflictError):
            await service.add_item(customer.id, foreign.id, 1)

        cart = await service.get_cart(customer.id)
        assert [item.product_id for item in cart.items] == [product_a.id]
        assert cart.items[0].quantity == 1
        assert cart.retailer_id == product_a.retailer_id


class TestUpdateAndRemove:

    async def test_update_quantity(self, db, customer, product_a):
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 1)
        cart = await service.update_item_quantity(customer.id, product_a.id, 4)
        assert cart.items[0].quantity == 4

    async def test_update_to_zero_removes_line(self, db, customer, product_a):
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 1)
        cart = await service.update_item_quantity(customer.id, product_a.id, 0)
        assert cart.items == []
        assert cart.retailer_id is None

    async def test_update_missing_line(self, db, customer, product_a):
        with pytest.raises(NotFoundError):
            await CartService(db).update_item_quantity(customer.id, product_a.id, 2)

    async def test_remove_missing_line_is_noop(self, db, customer, product_a, product_b):
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 1)
        cart = await service.remove_item(customer.id, product_b.id)
        assert len(cart.items) == 1

    async def test_remove_last_line_frees_retailer(self, db, customer, product_a, other_retailer):
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 1)
        await service.remove_item(customer.id, product_a.id)

        foreign = await make_product(db, other_retailer, name="Cheese", price="4.25")
        cart = await service.add_item(customer.id, foreign.id, 1)
        assert cart.retailer_id == other_retailer.id


class TestPricing:

    async def test_concrete_totals(self, db, customer, product_a, product_b):
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 2)
        cart = await service.add_item(customer.id, product_b.id, 1)

        assert cart.subtotal == Decimal("7.97")
        assert cart.tax == Decimal("0.80")
        assert cart.delivery_fee == Decimal("5.00")
        assert cart.total == Decimal("13.77")
        assert cart.item_count == 3

    async def test_discount_reduces_taxable_amount(self, db, customer, product_a, product_b):
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 2)
        await service.add_item(customer.id, product_b.id, 1)
        cart = await service.apply_discount(customer.id, Decimal("1.97"), "SAVE")

        assert cart.discount == Decimal("1.97")
        assert cart.coupon_code == "SAVE"
        assert cart.tax == Decimal("0.60")
        assert cart.total == Decimal("11.60")

    async def test_discount_cannot_exceed_subtotal(self, db, customer, product_a):
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 1)
        with pytest.raises(InvalidArgumentError):
            await service.apply_discount(customer.id, Decimal("3.00"))

    async def test_lowering_quantity_shrinks_discount(self, db, customer, product_a):
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 4)
        await service.apply_discount(customer.id, Decimal("11.96"), "ALLFREE")

        cart = await service.update_item_quantity(customer.id, product_a.id, 1)

        assert cart.subtotal == Decimal("2.99")
        assert cart.discount == Decimal("2.99")
        assert cart.tax == Decimal("0.00")
        assert cart.total == Decimal("5.00")

    async def test_removing_line_shrinks_discount(self, db, customer, product_a, product_b):
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 2)
        await service.add_item(customer.id, product_b.id, 1)
        await service.apply_discount(customer.id, Decimal("5.00"))

        cart = await service.remove_item(customer.id, product_a.id)

        assert cart.discount == Decimal("1.99")
        assert cart.total == Decimal("5.00")

    @pytest.mark.parametrize("discount, expected", [
        ("-1.00", "0.00"),
        ("2.50", "2.50"),
        ("9.99", "4.00"),
    ])
    def test_totals_clamp_discount(self, discount, expected):
        totals = compute_totals(Decimal("4.00"), Decimal(discount))
        assert totals.discount == Decimal(expected)
        assert totals.tax >= 0
        assert totals.total == totals.subtotal - totals.discount + totals.tax + totals.delivery_fee


class TestVerification:

    async def test_reports_lines_that_lost_stock(self, db, customer, product_a, product_b):
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 3)
        await service.add_item(customer.id, product_b.id, 1)
        await CatalogService(db).decrement_stock(product_a.id, 9)

        report = await service.verify_availability(customer.id)

        assert report.is_valid is False
        assert report.unavailable_items == [{
            "productId": str(product_a.id),
            "productName": "Apples",
            "requested": 3,
            "available": 1,
            "isAvailable": True,
        }]

    async def test_valid_cart(self, db, customer, product_a):
        service = CartService(db)
        await service.add_item(customer.id, product_a.id, 3)
        report = await service.verify_availability(customer.id)
        assert report.is_valid is True
        assert report.unavailable_items == []
