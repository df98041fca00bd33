import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, DateTime, Float, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nearmart.database import Base
from nearmart.db_types import UUIDType

if TYPE_CHECKING:
    from nearmart.models.product import Product


class Retailer(Base):
    """A store owner selling products to nearby customers."""
    __tablename__ = "retailers"

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

    # Store
    store_name: Mapped[str] = mapped_column(String(200), nullable=False)
    store_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Address
    street: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    zip_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Location
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

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
    products: Mapped[List["Product"]] = relationship(
        "Product",
        back_populates="retailer",
        cascade="all, delete-orphan",
    )

    @property
    def address(self) -> dict:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
        }

    @property
    def has_location(self) -> bool:
        return self.longitude is not None and self.latitude is not None

    def __repr__(self) -> str:
        return f"<Retailer(store='{self.store_name}')>"
