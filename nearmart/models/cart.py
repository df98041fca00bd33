import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Integer, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nearmart.core.pricing import PriceBreakdown, compute_totals, line_subtotal
from nearmart.database import Base
from nearmart.db_types import UUIDType, MoneyType

if TYPE_CHECKING:
    from nearmart.models.customer import Customer


class Cart(Base):
    """
    One mutable cart per customer, created lazily and never deleted.

    All items reference products from the same retailer (`retailer_id`,
    set by the first add and cleared when the cart empties). Pricing
    fields are derived, not stored.
    """
    __tablename__ = "carts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )
    retailer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("retailers.id", ondelete="SET NULL"),
        nullable=True
    )

    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    discount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    customer: Mapped["Customer"] = relationship("Customer", back_populates="cart")
    items: Mapped[List["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.added_at",
        lazy="selectin",
    )

    def find_item(self, product_id: uuid.UUID) -> Optional["CartItem"]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    @property
    def totals(self) -> PriceBreakdown:
        subtotal = line_subtotal((item.unit_price, item.quantity) for item in self.items)
        return compute_totals(subtotal, self.discount or Decimal("0.00"))

    @property
    def subtotal(self) -> Decimal:
        return self.totals.subtotal

    @property
    def tax(self) -> Decimal:
        return self.totals.tax

    @property
    def delivery_fee(self) -> Decimal:
        return self.totals.delivery_fee

    @property
    def total(self) -> Decimal:
        return self.totals.total

    @property
    def item_count(self) -> int:
        """Get total number of units."""
        return sum(item.quantity for item in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def __repr__(self) -> str:
        return f"<Cart(customer={self.customer_id}, lines={len(self.items)})>"


class CartItem(Base):
    """Cart line. Price, name and image are captured when the product is added."""
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    cart_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("carts.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False
    )
    retailer_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Product snapshot
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    cart: Mapped["Cart"] = relationship("Cart", back_populates="items")

    @property
    def line_total(self) -> Decimal:
        return line_subtotal([(self.unit_price, self.quantity)])

    def __repr__(self) -> str:
        return f"<CartItem(product='{self.product_name}', qty={self.quantity})>"
