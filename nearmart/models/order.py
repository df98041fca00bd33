import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Index, event, inspect
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nearmart.core.enum_utils import enum_comment
from nearmart.core.errors import InvalidArgumentError
from nearmart.database import Base
from nearmart.db_types import UUIDType, JSONType, MoneyType

if TYPE_CHECKING:
    from nearmart.models.customer import Customer


class OrderStatus(str, Enum):
    """Order lifecycle. DELIVERED and CANCELLED are terminal."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    CASH_ON_DELIVERY = "cash_on_delivery"
    WALLET = "wallet"


class Order(Base):
    """
    Order committed from a cart at checkout.

    Money columns, the order number, the customer and the line items are
    fixed at creation (enforced by the before_update listener below). Only
    status, status history, payment state and delivery tracking change.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_status_created', 'status', 'created_at'),
        Index('ix_order_customer_created', 'customer_id', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Order Identification
    order_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True
    )

    # Customer
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(30),
        default=OrderStatus.PENDING.value,
        nullable=False,
        index=True,
        comment=enum_comment(OrderStatus)
    )
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Pricing
    subtotal: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    discount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0.00"), nullable=False)
    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    tax: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    delivery_fee: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    total: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Payment
    payment_method: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment=enum_comment(PaymentMethod)
    )
    payment_status: Mapped[str] = mapped_column(
        String(30),
        default=PaymentStatus.PENDING.value,
        nullable=False,
        comment=enum_comment(PaymentStatus)
    )
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Delivery
    delivery_address: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        comment="Address snapshot: {street, city, state, zip_code}"
    )
    delivery_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    delivery_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expected_delivery_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    actual_delivery_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

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
    customer: Mapped["Customer"] = relationship("Customer", back_populates="orders")
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    status_history: Mapped[List["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.created_at",
        lazy="selectin",
    )

    @property
    def item_count(self) -> int:
        """Get total number of units."""
        return sum(item.quantity for item in self.items)

    @property
    def retailer_ids(self) -> set:
        return {item.retailer_id for item in self.items}

    def items_for_retailer(self, retailer_id: uuid.UUID) -> List["OrderItem"]:
        return [item for item in self.items if item.retailer_id == retailer_id]

    def __repr__(self) -> str:
        return f"<Order(number='{self.order_number}', status='{self.status}')>"


class OrderItem(Base):
    """Frozen snapshot of a cart line. No FK to products so history outlives the catalog."""
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)

    # Product snapshot (stored for historical record)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    retailer_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    retailer_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Quantity & Pricing
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    line_total: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem(product='{self.product_name}', qty={self.quantity})>"


class OrderStatusHistory(Base):
    """Append-only status log entry."""
    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status: Mapped[str] = mapped_column(String(30), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<OrderStatusHistory(status='{self.status}')>"


# =============================================================================
# IMMUTABILITY GUARDS
# =============================================================================

ORDER_FROZEN_FIELDS = (
    "order_number", "customer_id", "subtotal", "discount", "coupon_code",
    "tax", "delivery_fee", "total", "payment_method", "payment_amount",
    "delivery_address", "created_at",
)


def _reject_frozen_changes(target, fields) -> None:
    state = inspect(target)
    for field in fields:
        if state.attrs[field].history.has_changes():
            raise InvalidArgumentError(
                f"{type(target).__name__}.{field} cannot be changed after creation",
                {"field": field},
            )


@event.listens_for(Order, "before_update")
def _order_before_update(mapper, connection, target):
    _reject_frozen_changes(target, ORDER_FROZEN_FIELDS)


@event.listens_for(OrderItem, "before_update")
def _order_item_before_update(mapper, connection, target):
    _reject_frozen_changes(target, [attr.key for attr in mapper.column_attrs])


@event.listens_for(OrderStatusHistory, "before_update")
def _status_history_before_update(mapper, connection, target):
    _reject_frozen_changes(target, [attr.key for attr in mapper.column_attrs])
