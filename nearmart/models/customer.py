import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, Float, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nearmart.core.enum_utils import enum_comment
from nearmart.database import Base
from nearmart.db_types import UUIDType

if TYPE_CHECKING:
    from nearmart.models.cart import Cart
    from nearmart.models.order import Order


class PreferredDeliveryTime(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    ANYTIME = "anytime"


class Customer(Base):
    """A shopper. Owns at most one cart."""
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Account
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # Address
    street: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(20), nullable=False)

    # Location
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Delivery preferences
    preferred_time: Mapped[str] = mapped_column(
        String(20),
        default=PreferredDeliveryTime.ANYTIME.value,
        nullable=False,
        comment=enum_comment(PreferredDeliveryTime)
    )
    contactless_delivery: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivery_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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
    cart: Mapped[Optional["Cart"]] = relationship(
        "Cart",
        back_populates="customer",
        uselist=False
    )
    orders: Mapped[List["Order"]] = relationship("Order", back_populates="customer")

    @property
    def address(self) -> dict:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
        }

    @property
    def full_address(self) -> str:
        return f"{self.street}, {self.city}, {self.state} {self.zip_code}"

    @property
    def has_location(self) -> bool:
        return self.longitude is not None and self.latitude is not None

    def __repr__(self) -> str:
        return f"<Customer(email='{self.email}')>"
