from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple
import uuid
import logging

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from nearmart.core.errors import NotFoundError, PermissionDeniedError
from nearmart.core.pricing import line_subtotal
from nearmart.models.order import Order, OrderItem
from nearmart.services import order_state_machine
from nearmart.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)


@dataclass
class RetailerOrderView:
    """An order as one retailer sees it: only that retailer's lines."""
    order: Order
    items: List[OrderItem]
    subtotal: Decimal


class OrderService:
    """Order queries and post-creation lifecycle operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.catalog = CatalogService(db)

    # ==================== QUERIES ====================

    async def get_order_by_id(self, order_id: uuid.UUID, lock: bool = False) -> Order:
        stmt = select(Order).where(Order.id == order_id)
        if lock:
            stmt = stmt.with_for_update()
        stmt = stmt.execution_options(populate_existing=True)
        order = (await self.db.execute(stmt)).scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order not found", {"orderId": str(order_id)})
        return order

    async def get_customer_order(self, customer_id: uuid.UUID, order_id: uuid.UUID) -> Order:
        order = await self.get_order_by_id(order_id)
        if order.customer_id != customer_id:
            # Don't reveal other customers' orders
            raise NotFoundError("Order not found", {"orderId": str(order_id)})
        return order

    async def list_customer_orders(
        self,
        customer_id: uuid.UUID,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
    ) -> Tuple[List[Order], int]:
        """Paginated order history, newest first."""
        filters = [Order.customer_id == customer_id]
        if status:
            filters.append(Order.status == status)

        count_stmt = select(func.count(Order.id)).where(and_(*filters))
        total = (await self.db.execute(count_stmt)).scalar() or 0

        stmt = (
            select(Order)
            .where(and_(*filters))
            .order_by(Order.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def list_retailer_orders(
        self,
        retailer_id: uuid.UUID,
        status: Optional[str] = None,
    ) -> List[RetailerOrderView]:
        """Orders holding at least one of the retailer's lines, filtered to those lines."""
        retailer_orders = select(OrderItem.order_id).where(OrderItem.retailer_id == retailer_id)
        stmt = select(Order).where(Order.id.in_(retailer_orders))
        if status:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.created_at.desc())

        result = await self.db.execute(stmt)
        return [self.retailer_view(order, retailer_id) for order in result.scalars().all()]

    @staticmethod
    def retailer_view(order: Order, retailer_id: uuid.UUID) -> RetailerOrderView:
        items = order.items_for_retailer(retailer_id)
        return RetailerOrderView(
            order=order,
            items=items,
            subtotal=line_subtotal((item.unit_price, item.quantity) for item in items),
        )

    async def get_retailer_order(self, retailer_id: uuid.UUID, order_id: uuid.UUID, lock: bool = False) -> Order:
        """Load an order a retailer is allowed to act on."""
        order = await self.get_order_by_id(order_id, lock=lock)
        if retailer_id not in order.retailer_ids:
            raise PermissionDeniedError(
                "Not authorized to update this order",
                {"orderId": str(order_id)},
            )
        return order

    # ==================== LIFECYCLE ====================

    async def update_status(
        self,
        order_id: uuid.UUID,
        new_status: str,
        note: Optional[str] = None,
        retailer_id: Optional[uuid.UUID] = None,
    ) -> Order:
        if retailer_id is not None:
            order = await self.get_retailer_order(retailer_id, order_id, lock=True)
        else:
            order = await self.get_order_by_id(order_id, lock=True)

        old_status = order.status
        order_state_machine.apply_status_update(order, new_status, note)
        await self.db.commit()

        logger.info(f"Order {order.order_number} status {old_status} -> {order.status}")
        return order

    async def cancel(
        self,
        order_id: uuid.UUID,
        reason: Optional[str] = None,
        retailer_id: Optional[uuid.UUID] = None,
    ) -> Order:
        """Cancel the order and put its reserved stock back, in one transaction."""
        if retailer_id is not None:
            order = await self.get_retailer_order(retailer_id, order_id, lock=True)
        else:
            order = await self.get_order_by_id(order_id, lock=True)

        order_state_machine.apply_cancel(order, reason)

        for item in order.items:
            try:
                await self.catalog.increment_stock(item.product_id, item.quantity, commit=False)
            except NotFoundError:
                logger.warning(
                    f"Product {item.product_id} no longer exists; "
                    f"stock for order {order.order_number} not restored"
                )

        await self.db.commit()
        logger.info(f"Order {order.order_number} cancelled: {reason or 'no reason given'}")
        return order

    async def update_payment(
        self,
        order_id: uuid.UUID,
        payment_status: str,
        transaction_id: Optional[str] = None,
        retailer_id: Optional[uuid.UUID] = None,
    ) -> Order:
        if retailer_id is not None:
            order = await self.get_retailer_order(retailer_id, order_id, lock=True)
        else:
            order = await self.get_order_by_id(order_id, lock=True)

        order_state_machine.apply_payment_update(order, payment_status, transaction_id)
        await self.db.commit()

        logger.info(f"Order {order.order_number} payment status -> {order.payment_status}")
        return order
