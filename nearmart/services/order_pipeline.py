"""
Order Commitment Pipeline.

Turns a customer's cart into an immutable order:

    load cart -> reject empty -> re-verify availability -> snapshot lines
    -> price -> allocate order number -> insert order -> decrement stock
    -> clear cart -> commit

Everything after loading the cart runs in one database transaction. A
failure at any step rolls the whole attempt back: no order row, no stock
change, cart untouched. An order-number collision (unique violation on
orders.order_number) rolls back and retries the whole attempt with a fresh
number.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional
import secrets
import uuid
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from nearmart.config import settings
from nearmart.core.address import normalize_address
from nearmart.core.enum_utils import to_enum
from nearmart.core.errors import (
    ConflictError,
    EmptyCartError,
    InternalError,
    InvalidArgumentError,
    ItemsUnavailableError,
    MarketplaceError,
    NotFoundError,
)
from nearmart.core.pricing import clamp_discount, compute_totals, round2
from nearmart.models.cart import Cart
from nearmart.models.customer import Customer
from nearmart.models.order import Order, OrderItem, PaymentMethod, PaymentStatus
from nearmart.models.retailer import Retailer
from nearmart.services import order_state_machine
from nearmart.services.cart_service import CartService
from nearmart.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductSnapshot:
    """Immutable copy of a cart line taken at checkout."""
    product_id: uuid.UUID
    product_name: str
    product_image: Optional[str]
    unit_price: Decimal
    quantity: int
    retailer_id: uuid.UUID
    retailer_name: str

    @property
    def line_total(self) -> Decimal:
        return round2(self.unit_price * self.quantity)

    def to_order_item(self) -> OrderItem:
        return OrderItem(
            product_id=self.product_id,
            product_name=self.product_name,
            product_image=self.product_image,
            unit_price=self.unit_price,
            quantity=self.quantity,
            line_total=self.line_total,
            retailer_id=self.retailer_id,
            retailer_name=self.retailer_name,
        )


def is_order_number_collision(error: IntegrityError) -> bool:
    return "order_number" in str(error.orig if error.orig is not None else error)


class OrderPipeline:
    """Checkout: cart -> order, atomically."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.carts = CartService(db)
        self.catalog = CatalogService(db)

    # ==================== ORDER NUMBER GENERATION ====================

    def generate_order_number(self) -> str:
        """Order number: NM-YYMMDD-NNNN with a random 4-digit suffix."""
        today = datetime.now(timezone.utc).strftime("%y%m%d")
        return f"{settings.ORDER_NUMBER_PREFIX}-{today}-{secrets.randbelow(10000):04d}"

    # ==================== COMMIT ====================

    async def commit_for_customer(
        self,
        customer_id: uuid.UUID,
        payment_method: str,
        delivery_address: Optional[dict] = None,
        delivery_phone: Optional[str] = None,
        delivery_instructions: Optional[str] = None,
    ) -> Order:
        cart = await self.carts.get_cart(customer_id)
        return await self.commit(
            cart.id,
            payment_method,
            delivery_address=delivery_address,
            delivery_phone=delivery_phone,
            delivery_instructions=delivery_instructions,
        )

    async def commit(
        self,
        cart_id: uuid.UUID,
        payment_method: str,
        delivery_address: Optional[dict] = None,
        delivery_phone: Optional[str] = None,
        delivery_instructions: Optional[str] = None,
    ) -> Order:
        """
        Commit the cart as an order.

        Raises:
            NotFoundError: cart does not exist
            EmptyCartError: cart has no lines
            ItemsUnavailableError: a line fails checkout-time verification
            InsufficientStockError: stock moved between verification and decrement
            InvalidArgumentError: bad payment method or no usable delivery address
            ConflictError: no unique order number after ORDER_NUMBER_MAX_ATTEMPTS
        """
        method = to_enum(payment_method, PaymentMethod)
        if method is None:
            raise InvalidArgumentError(
                f"Invalid payment method '{payment_method}'. "
                f"Must be one of: {', '.join(m.value for m in PaymentMethod)}",
                {"paymentMethod": payment_method},
            )

        max_attempts = settings.ORDER_NUMBER_MAX_ATTEMPTS
        for attempt in range(1, max_attempts + 1):
            order_number = self.generate_order_number()
            try:
                order = await self._commit_attempt(
                    cart_id,
                    order_number,
                    method,
                    delivery_address,
                    delivery_phone,
                    delivery_instructions,
                )
            except IntegrityError as e:
                await self.db.rollback()
                if not is_order_number_collision(e):
                    logger.error(f"Database integrity error committing cart {cart_id}: {e}")
                    raise InternalError("Order creation failed: invalid data reference") from e
                logger.warning(
                    f"Order number {order_number} already taken "
                    f"(attempt {attempt}/{max_attempts}), regenerating"
                )
                continue
            except MarketplaceError:
                await self.db.rollback()
                raise
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Database error committing cart {cart_id}: {e}")
                raise InternalError("Order creation failed: database error") from e

            logger.info(
                f"Order {order.order_number} committed for customer {order.customer_id} "
                f"(total {order.total}, {len(order.items)} lines)"
            )
            return order

        raise ConflictError(
            "Could not allocate a unique order number, please retry",
            {"attempts": max_attempts},
        )

    async def _commit_attempt(
        self,
        cart_id: uuid.UUID,
        order_number: str,
        method: PaymentMethod,
        delivery_address: Optional[dict],
        delivery_phone: Optional[str],
        delivery_instructions: Optional[str],
    ) -> Order:
        cart = await self.carts.get_cart_by_id(cart_id, lock=True)

        # 1. Empty cart
        if not cart.items:
            raise EmptyCartError("Cart is empty", {"cartId": str(cart.id)})

        # 2. Checkout-time verification supersedes anything checked at add time
        report = await self.carts.verify_cart(cart)
        if not report.is_valid:
            logger.warning(
                f"Checkout of cart {cart.id} rejected: "
                f"{len(report.unavailable_items)} unavailable item(s)"
            )
            raise ItemsUnavailableError(
                "Some items in your cart are no longer available",
                report.unavailable_items,
            )

        # 3. Snapshot lines
        snapshots = await self._snapshot_lines(cart)

        # 4. Price from the cart's captured unit prices
        subtotal = cart.subtotal
        discount = clamp_discount(cart.discount, subtotal)
        if discount != round2(cart.discount):
            logger.warning(
                f"Cart {cart.id} discount {cart.discount} exceeds subtotal {subtotal}, "
                f"charging with {discount}"
            )
        totals = compute_totals(subtotal, discount)

        customer = await self.db.get(Customer, cart.customer_id)
        if customer is None:
            raise NotFoundError("Customer not found", {"customerId": str(cart.customer_id)})
        address = normalize_address(delivery_address if delivery_address is not None else customer.address)

        # 5-6. Build and insert the order
        now = datetime.now(timezone.utc)
        is_cod = method == PaymentMethod.CASH_ON_DELIVERY
        order = Order(
            order_number=order_number,
            customer_id=cart.customer_id,
            subtotal=totals.subtotal,
            discount=totals.discount,
            coupon_code=cart.coupon_code,
            tax=totals.tax,
            delivery_fee=totals.delivery_fee,
            total=totals.total,
            payment_method=method.value,
            payment_status=(PaymentStatus.PENDING if is_cod else PaymentStatus.COMPLETED).value,
            payment_amount=totals.total,
            paid_at=None if is_cod else now,
            delivery_address=address,
            delivery_phone=delivery_phone or customer.phone,
            delivery_instructions=delivery_instructions or customer.delivery_instructions,
            items=[snapshot.to_order_item() for snapshot in snapshots],
            status_history=[],
            created_at=now,
        )
        order_state_machine.record_creation(order, now)
        self.db.add(order)
        await self.db.flush()

        # 7. Reserve stock; any failure aborts the whole transaction
        for snapshot in snapshots:
            await self.catalog.decrement_stock(snapshot.product_id, snapshot.quantity, commit=False)

        # 8. Clear the cart and commit
        self.carts.reset_cart(cart)
        await self.db.commit()
        return order

    async def _snapshot_lines(self, cart: Cart) -> List[ProductSnapshot]:
        products = await self.catalog.get_products([item.product_id for item in cart.items])
        retailer_ids = {item.retailer_id for item in cart.items}
        result = await self.db.execute(select(Retailer).where(Retailer.id.in_(retailer_ids)))
        retailers: Dict[uuid.UUID, Retailer] = {r.id: r for r in result.scalars().all()}

        snapshots = []
        for item in cart.items:
            product = products[item.product_id]
            retailer = retailers.get(item.retailer_id)
            snapshots.append(
                ProductSnapshot(
                    product_id=item.product_id,
                    product_name=product.name,
                    product_image=product.primary_image,
                    unit_price=round2(item.unit_price),
                    quantity=item.quantity,
                    retailer_id=item.retailer_id,
                    retailer_name=retailer.store_name if retailer else "",
                )
            )
        return snapshots
