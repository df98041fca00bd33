import asyncio
import uuid
from decimal import Decimal

import pytest

from nearmart.core.errors import (
    ConflictError,
    InsufficientStockError,
    InvalidArgumentError,
    NotFoundError,
)
from nearmart.services.cart_service import CartService
from nearmart.services.catalog_service import CatalogService
from nearmart.services.order_pipeline import OrderPipeline

from tests.conftest import make_product


class TestStockOperations:

    async def test_decrement_reduces_stock(self, db, product_a):
        product = await CatalogService(db).decrement_stock(product_a.id, 3)
        assert product.stock == 7

    async def test_decrement_to_exactly_zero(self, db, product_a):
        product = await CatalogService(db).decrement_stock(product_a.id, 10)
        assert product.stock == 0

    async def test_decrement_beyond_stock_fails_and_leaves_stock(self, db, product_a):
        catalog = CatalogService(db)
        with pytest.raises(InsufficientStockError) as exc:
            await catalog.decrement_stock(product_a.id, 11)
        assert exc.value.details["available"] == 10
        assert exc.value.details["requested"] == 11

        product = await catalog.get_product(product_a.id, refresh=True)
        assert product.stock == 10

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    async def test_decrement_rejects_non_positive_quantity(self, db, product_a, quantity):
        with pytest.raises(InvalidArgumentError):
            await CatalogService(db).decrement_stock(product_a.id, quantity)

    async def test_decrement_unknown_product(self, db):
        with pytest.raises(NotFoundError):
            await CatalogService(db).decrement_stock(uuid.uuid4(), 1)

    async def test_increment_adds_stock(self, db, product_a):
        product = await CatalogService(db).increment_stock(product_a.id, 5)
        assert product.stock == 15

    async def test_set_availability_is_idempotent(self, db, product_a):
        catalog = CatalogService(db)
        product = await catalog.set_availability(product_a.id, False)
        assert product.is_available is False
        product = await catalog.set_availability(product_a.id, False)
        assert product.is_available is False


class TestConcurrentDecrement:

    async def test_stock_never_goes_negative(self, session_factory, db, retailer):
        product = await make_product(db, retailer, name="Milk", stock=5)

        async def attempt():
            async with session_factory() as session:
                try:
                    await CatalogService(session).decrement_stock(product.id, 1)
                    return True
                except InsufficientStockError:
                    return False

        results = await asyncio.gather(*(attempt() for _ in range(12)))

        assert results.count(True) == 5
        assert results.count(False) == 7
        refreshed = await CatalogService(db).get_product(product.id, refresh=True)
        assert refreshed.stock == 0


class TestRetailerCatalog:

    async def test_create_and_update_product(self, db, retailer):
        catalog = CatalogService(db)
        product = await catalog.create_product(
            retailer.id, {"name": "Eggs", "category": "Dairy", "price": Decimal("3.50"), "stock": 12}
        )
        assert product.retailer_id == retailer.id
        assert product.is_available is True

        updated = await catalog.update_product(retailer.id, product.id, {"name": "Free-range Eggs"})
        assert updated.name == "Free-range Eggs"

    async def test_other_retailer_cannot_touch_product(self, db, product_a, other_retailer):
        with pytest.raises(NotFoundError):
            await CatalogService(db).update_product(other_retailer.id, product_a.id, {"name": "Mine"})

    async def test_restock(self, db, retailer, product_a):
        product = await CatalogService(db).restock(retailer.id, product_a.id, 4)
        assert product.stock == 14

    async def test_delete_removes_cart_lines(self, db, retailer, customer, product_a):
        await CartService(db).add_item(customer.id, product_a.id, 1)
        await CatalogService(db).delete_product(retailer.id, product_a.id)

        cart = await CartService(db).get_cart(customer.id)
        assert cart.items == []

    async def test_delete_refused_when_ordered(self, db, retailer, customer, product_a):
        await CartService(db).add_item(customer.id, product_a.id, 1)
        await OrderPipeline(db).commit_for_customer(customer.id, "cash_on_delivery")

        with pytest.raises(ConflictError):
            await CatalogService(db).delete_product(retailer.id, product_a.id)

    async def test_store_listing_hides_unavailable(self, db, retailer, product_a):
        await make_product(db, retailer, name="Hidden", is_available=False)
        products, total = await CatalogService(db).list_store_products(retailer.id)
        assert total == 1
        assert [p.id for p in products] == [product_a.id]
