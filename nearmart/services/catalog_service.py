"""
Catalog Store: product records and their stock counters.

Stock is the principal shared mutable resource. Decrements are a single
conditional UPDATE (`stock = stock - :qty WHERE id = :id AND stock >= :qty`)
whose affected-row count tells us whether the reservation happened, so no
read-then-write race can drive stock negative.
"""
from typing import List, Optional, Tuple
import uuid
import logging

from sqlalchemy import select, update, delete, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from nearmart.core.errors import (
    ConflictError,
    InsufficientStockError,
    InvalidArgumentError,
    NotFoundError,
)
from nearmart.models.cart import CartItem
from nearmart.models.order import OrderItem
from nearmart.models.product import Product
from nearmart.models.retailer import Retailer

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = (
    "name", "description", "category", "images", "price", "stock", "is_available",
    "weight_value", "weight_unit", "length", "width", "height", "dimension_unit",
)


def require_positive_int(quantity, field: str = "quantity") -> int:
    # bool is an int subclass; True must not count as 1
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidArgumentError(f"{field.capitalize()} must be a positive integer", {field: quantity})
    return quantity


def is_orderable(product: Product, requested_qty: int) -> bool:
    """A product can be ordered when it is flagged available and has enough stock."""
    return bool(product.is_available) and product.stock >= requested_qty


class CatalogService:
    """Product lookups, retailer catalog management and stock adjustments."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== LOOKUPS ====================

    async def get_product(self, product_id: uuid.UUID, refresh: bool = False) -> Product:
        """Get a product or raise NotFoundError.

        refresh=True overwrites any copy already in the session identity map,
        which is needed after a bulk stock UPDATE.
        """
        stmt = select(Product).where(Product.id == product_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        product = (await self.db.execute(stmt)).scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product not found", {"productId": str(product_id)})
        return product

    async def get_products(self, product_ids: List[uuid.UUID]) -> dict:
        """Current state of several products keyed by id (fresh from the database)."""
        if not product_ids:
            return {}
        stmt = (
            select(Product)
            .where(Product.id.in_(product_ids))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return {p.id: p for p in result.scalars().all()}

    async def get_retailer(self, retailer_id: uuid.UUID) -> Retailer:
        retailer = await self.db.get(Retailer, retailer_id)
        if retailer is None:
            raise NotFoundError("Retailer not found", {"retailerId": str(retailer_id)})
        return retailer

    async def list_retailer_products(self, retailer_id: uuid.UUID) -> List[Product]:
        stmt = (
            select(Product)
            .where(Product.retailer_id == retailer_id)
            .order_by(Product.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_store_products(
        self,
        retailer_id: uuid.UUID,
        page: int = 1,
        limit: int = 20,
        category: Optional[str] = None,
        min_price=None,
        max_price=None,
        search: Optional[str] = None,
    ) -> Tuple[List[Product], int]:
        """Available products of one store, newest first, with the total match count."""
        await self.get_retailer(retailer_id)

        filters = [Product.retailer_id == retailer_id, Product.is_available == True]  # noqa: E712

        if category:
            filters.append(Product.category == category)
        if min_price is not None:
            filters.append(Product.price >= min_price)
        if max_price is not None:
            filters.append(Product.price <= max_price)
        if search:
            search_filter = f"%{search}%"
            filters.append(
                or_(
                    Product.name.ilike(search_filter),
                    Product.description.ilike(search_filter),
                    Product.category.ilike(search_filter),
                )
            )

        count_stmt = select(func.count(Product.id)).where(and_(*filters))
        total = (await self.db.execute(count_stmt)).scalar() or 0

        stmt = (
            select(Product)
            .where(and_(*filters))
            .order_by(Product.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    # ==================== STOCK OPERATIONS ====================

    async def decrement_stock(
        self,
        product_id: uuid.UUID,
        quantity: int,
        commit: bool = True
    ) -> Product:
        """
        Atomically reserve `quantity` units.

        Raises:
            InvalidArgumentError: quantity is not a positive integer
            NotFoundError: product does not exist
            InsufficientStockError: stock < quantity at the moment of the update
        """
        require_positive_int(quantity)

        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        if result.rowcount == 0:
            current = await self.db.execute(
                select(Product.stock).where(Product.id == product_id)
            )
            available = current.scalar_one_or_none()
            if available is None:
                raise NotFoundError("Product not found", {"productId": str(product_id)})
            raise InsufficientStockError(
                "Insufficient stock",
                {
                    "productId": str(product_id),
                    "requested": quantity,
                    "available": available,
                },
            )

        if commit:
            await self.db.commit()
        return await self.get_product(product_id, refresh=True)

    async def increment_stock(
        self,
        product_id: uuid.UUID,
        quantity: int,
        commit: bool = True
    ) -> Product:
        """Add `quantity` units (restock, or returning stock of a cancelled order)."""
        require_positive_int(quantity)

        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Product not found", {"productId": str(product_id)})

        if commit:
            await self.db.commit()
        return await self.get_product(product_id, refresh=True)

    async def set_availability(self, product_id: uuid.UUID, flag: bool) -> Product:
        """Idempotent: setting the current value again is a no-op success."""
        product = await self.get_product(product_id)
        if product.is_available != flag:
            product.is_available = flag
            await self.db.commit()
            await self.db.refresh(product)
        return product

    # ==================== RETAILER CATALOG ====================

    async def get_owned_product(self, retailer_id: uuid.UUID, product_id: uuid.UUID) -> Product:
        product = await self.get_product(product_id)
        if product.retailer_id != retailer_id:
            raise NotFoundError(
                "Product not found or not owned by this retailer",
                {"productId": str(product_id)},
            )
        return product

    async def create_product(self, retailer_id: uuid.UUID, data: dict) -> Product:
        await self.get_retailer(retailer_id)
        product = Product(
            retailer_id=retailer_id,
            **{k: v for k, v in data.items() if k in PRODUCT_FIELDS},
        )
        self.db.add(product)
        await self.db.commit()
        await self.db.refresh(product)
        logger.info(f"Product {product.id} created for retailer {retailer_id}")
        return product

    async def update_product(
        self,
        retailer_id: uuid.UUID,
        product_id: uuid.UUID,
        data: dict
    ) -> Product:
        product = await self.get_owned_product(retailer_id, product_id)
        for field, value in data.items():
            if field in PRODUCT_FIELDS:
                setattr(product, field, value)
        await self.db.commit()
        await self.db.refresh(product)
        return product

    async def delete_product(self, retailer_id: uuid.UUID, product_id: uuid.UUID) -> None:
        """Delete a product that no order references; cart lines holding it go too."""
        product = await self.get_owned_product(retailer_id, product_id)

        referenced = await self.db.execute(
            select(func.count(OrderItem.id)).where(OrderItem.product_id == product_id)
        )
        if referenced.scalar():
            raise ConflictError(
                "Product is referenced by order history and cannot be deleted. "
                "Mark it unavailable instead.",
                {"productId": str(product_id)},
            )

        await self.db.execute(delete(CartItem).where(CartItem.product_id == product_id))
        await self.db.delete(product)
        await self.db.commit()
        logger.info(f"Product {product_id} deleted by retailer {retailer_id}")

    async def set_owned_availability(
        self,
        retailer_id: uuid.UUID,
        product_id: uuid.UUID,
        flag: bool
    ) -> Product:
        await self.get_owned_product(retailer_id, product_id)
        return await self.set_availability(product_id, flag)

    async def restock(
        self,
        retailer_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int
    ) -> Product:
        await self.get_owned_product(retailer_id, product_id)
        product = await self.increment_stock(product_id, quantity)
        logger.info(f"Product {product_id} restocked by {quantity} (now {product.stock})")
        return product
