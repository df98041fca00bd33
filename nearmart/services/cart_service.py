"""
Cart Aggregate and Availability Verifier.

One cart per customer, created lazily on first access. Every mutating
operation loads the cart row with FOR UPDATE so concurrent requests from the
same customer serialize on PostgreSQL; the (cart_id, product_id) unique
constraint turns a lost race on a brand new line into an IntegrityError,
which is retried against the fresh cart state.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional
import uuid
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from nearmart.core.errors import (
    CrossRetailerConflictError,
    InvalidArgumentError,
    NotFoundError,
    UnavailableError,
)
from nearmart.core.pricing import clamp_discount, round2
from nearmart.models.cart import Cart, CartItem
from nearmart.models.customer import Customer
from nearmart.services.catalog_service import CatalogService, is_orderable, require_positive_int

logger = logging.getLogger(__name__)

# A lost race on the unique (cart_id, product_id) line is retried this many times
CART_WRITE_ATTEMPTS = 2


@dataclass
class AvailabilityReport:
    """Result of re-checking cart lines against current catalog state."""
    is_valid: bool
    unavailable_items: List[Dict[str, Any]] = field(default_factory=list)


class CartService:
    """Cart mutations and checkout-time verification."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.catalog = CatalogService(db)

    # ==================== LOADING ====================

    async def find_cart(self, customer_id: uuid.UUID, lock: bool = False) -> Optional[Cart]:
        stmt = select(Cart).where(Cart.customer_id == customer_id)
        if lock:
            stmt = stmt.with_for_update()
        stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_cart(self, customer_id: uuid.UUID, lock: bool = False) -> Cart:
        """Load the customer's cart, creating an empty one on first access."""
        cart = await self.find_cart(customer_id, lock=lock)
        if cart is not None:
            return cart

        customer = await self.db.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("Customer not found", {"customerId": str(customer_id)})

        cart = Cart(customer_id=customer_id, discount=Decimal("0.00"), items=[])
        self.db.add(cart)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another request created it first
            await self.db.rollback()
            cart = await self.find_cart(customer_id, lock=lock)
            if cart is None:
                raise
        return cart

    async def get_cart_by_id(self, cart_id: uuid.UUID, lock: bool = False) -> Cart:
        stmt = select(Cart).where(Cart.id == cart_id)
        if lock:
            stmt = stmt.with_for_update()
        stmt = stmt.execution_options(populate_existing=True)
        cart = (await self.db.execute(stmt)).scalar_one_or_none()
        if cart is None:
            raise NotFoundError("Cart not found", {"cartId": str(cart_id)})
        return cart

    @staticmethod
    def cart_retailer_id(cart: Cart) -> Optional[uuid.UUID]:
        """The retailer every line must share, or None for an empty cart."""
        if not cart.items:
            return None
        return cart.retailer_id or cart.items[0].retailer_id

    # ==================== MUTATIONS ====================

    async def add_item(
        self,
        customer_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int = 1
    ) -> Cart:
        """
        Add `quantity` units of a product.

        Re-adding a product already in the cart increases that line's
        quantity and refreshes its unit price to the current catalog price.
        """
        require_positive_int(quantity)

        for attempt in range(1, CART_WRITE_ATTEMPTS + 1):
            try:
                return await self._add_item_once(customer_id, product_id, quantity)
            except IntegrityError:
                await self.db.rollback()
                if attempt == CART_WRITE_ATTEMPTS:
                    raise
                logger.warning(
                    f"Concurrent cart write for customer {customer_id}, retrying add of {product_id}"
                )

    async def _add_item_once(
        self,
        customer_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int
    ) -> Cart:
        cart = await self.get_cart(customer_id, lock=True)
        product = await self.catalog.get_product(product_id, refresh=True)

        if not is_orderable(product, quantity):
            raise UnavailableError(
                "Product is unavailable or insufficient stock",
                {
                    "productId": str(product.id),
                    "requested": quantity,
                    "available": product.stock,
                    "isAvailable": product.is_available,
                },
            )

        cart_retailer = self.cart_retailer_id(cart)
        if cart_retailer is not None and cart_retailer != product.retailer_id:
            raise CrossRetailerConflictError(
                "Cart already contains products from another store. "
                "Clear the cart or complete that order first.",
                {
                    "cartRetailerId": str(cart_retailer),
                    "productRetailerId": str(product.retailer_id),
                },
            )

        existing = cart.find_item(product.id)
        if existing is not None:
            existing.quantity += quantity
            existing.unit_price = product.price
        else:
            cart.items.append(
                CartItem(
                    product_id=product.id,
                    retailer_id=product.retailer_id,
                    quantity=quantity,
                    unit_price=product.price,
                    product_name=product.name,
                    product_image=product.primary_image,
                )
            )
        cart.retailer_id = product.retailer_id
        self._fit_discount(cart)

        await self.db.commit()
        return cart

    async def remove_item(self, customer_id: uuid.UUID, product_id: uuid.UUID) -> Cart:
        """Remove a product's line. Missing line is a no-op; missing cart is NotFound."""
        cart = await self.find_cart(customer_id, lock=True)
        if cart is None:
            raise NotFoundError("Cart not found", {"customerId": str(customer_id)})

        item = cart.find_item(product_id)
        if item is not None:
            cart.items.remove(item)
            if not cart.items:
                cart.retailer_id = None
            self._fit_discount(cart)
            await self.db.commit()
        return cart

    async def update_item_quantity(
        self,
        customer_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int
    ) -> Cart:
        """Set a line's quantity; zero or less removes the line."""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidArgumentError("Quantity must be an integer", {"quantity": quantity})
        if quantity <= 0:
            return await self.remove_item(customer_id, product_id)

        cart = await self.get_cart(customer_id, lock=True)
        item = cart.find_item(product_id)
        if item is None:
            raise NotFoundError("Item not found in cart", {"productId": str(product_id)})

        product = await self.catalog.get_product(product_id, refresh=True)
        if not is_orderable(product, quantity):
            raise UnavailableError(
                "Product is unavailable or insufficient stock",
                {
                    "productId": str(product.id),
                    "requested": quantity,
                    "available": product.stock,
                    "isAvailable": product.is_available,
                },
            )

        item.quantity = quantity
        item.unit_price = product.price
        self._fit_discount(cart)
        await self.db.commit()
        return cart

    async def apply_discount(
        self,
        customer_id: uuid.UUID,
        discount,
        coupon_code: Optional[str] = None
    ) -> Cart:
        """Store an already-resolved discount amount and the coupon that produced it."""
        cart = await self.get_cart(customer_id, lock=True)
        amount = round2(discount)
        if amount < 0:
            raise InvalidArgumentError("Discount cannot be negative", {"discount": str(amount)})
        if amount > cart.subtotal:
            raise InvalidArgumentError(
                "Discount cannot exceed the cart subtotal",
                {"discount": str(amount), "subtotal": str(cart.subtotal)},
            )
        cart.discount = amount
        cart.coupon_code = coupon_code
        await self.db.commit()
        return cart

    def _fit_discount(self, cart: Cart) -> None:
        """Shrink a stored discount that a smaller subtotal no longer covers."""
        fitted = clamp_discount(cart.discount, cart.subtotal)
        if fitted != cart.discount:
            logger.info(
                f"Cart {cart.id} discount reduced from {cart.discount} to {fitted} "
                f"after its subtotal dropped"
            )
            cart.discount = fitted

    def reset_cart(self, cart: Cart) -> None:
        """Empty a loaded cart in the current transaction without committing."""
        cart.items.clear()
        cart.discount = Decimal("0.00")
        cart.coupon_code = None
        cart.retailer_id = None

    async def clear_cart(self, customer_id: uuid.UUID) -> Cart:
        cart = await self.get_cart(customer_id, lock=True)
        self.reset_cart(cart)
        await self.db.commit()
        return cart

    # ==================== VERIFICATION ====================

    async def verify_cart(self, cart: Cart) -> AvailabilityReport:
        """Re-check every line against the catalog's current stock and flags."""
        products = await self.catalog.get_products([item.product_id for item in cart.items])
        unavailable = []

        for item in cart.items:
            product = products.get(item.product_id)
            if product is None or not is_orderable(product, item.quantity):
                unavailable.append({
                    "productId": str(item.product_id),
                    "productName": item.product_name,
                    "requested": item.quantity,
                    "available": product.stock if product else 0,
                    "isAvailable": product.is_available if product else False,
                })

        return AvailabilityReport(is_valid=not unavailable, unavailable_items=unavailable)

    async def verify_availability(self, customer_id: uuid.UUID) -> AvailabilityReport:
        cart = await self.get_cart(customer_id)
        return await self.verify_cart(cart)
