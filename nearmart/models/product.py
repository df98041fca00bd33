import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric, Index, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nearmart.core.enum_utils import enum_comment
from nearmart.database import Base
from nearmart.db_types import UUIDType, JSONType, MoneyType

if TYPE_CHECKING:
    from nearmart.models.retailer import Retailer


class WeightUnit(str, Enum):
    G = "g"
    KG = "kg"
    LB = "lb"
    OZ = "oz"


class DimensionUnit(str, Enum):
    CM = "cm"
    IN = "in"


class Product(Base):
    """
    Catalog entry owned by one retailer.

    `stock` is only ever decremented through a conditional UPDATE
    (see CatalogService.decrement_stock); the CHECK constraint is the
    storage-level backstop.
    """
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("price > 0", name="ck_products_price_positive"),
        Index("ix_products_retailer_available", "retailer_id", "is_available"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    retailer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("retailers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Basic Information
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    images: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)

    # Pricing & stock
    price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Physical attributes
    weight_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3), nullable=True)
    weight_unit: Mapped[Optional[str]] = mapped_column(
        String(5),
        nullable=True,
        comment=enum_comment(WeightUnit)
    )
    length: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    width: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    height: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    dimension_unit: Mapped[Optional[str]] = mapped_column(
        String(5),
        nullable=True,
        comment=enum_comment(DimensionUnit)
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
    retailer: Mapped["Retailer"] = relationship("Retailer", back_populates="products")

    @property
    def in_stock(self) -> bool:
        return self.stock > 0 and self.is_available

    @property
    def primary_image(self) -> Optional[str]:
        """One representative image for cart and order snapshots."""
        return self.images[0] if self.images else None

    def __repr__(self) -> str:
        return f"<Product(name='{self.name}', stock={self.stock})>"
