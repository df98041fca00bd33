from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import uuid

from pydantic import Field, computed_field

from nearmart.models.product import DimensionUnit, WeightUnit
from nearmart.schemas.base import BaseCreateSchema, BaseResponseSchema, BaseUpdateSchema


class ProductCreate(BaseCreateSchema):
    """Product creation schema."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: str = Field(..., min_length=1, max_length=100)
    images: List[str] = Field(default_factory=list)
    price: Decimal = Field(..., gt=0, decimal_places=2)
    stock: int = Field(0, ge=0)
    is_available: bool = True
    weight_value: Optional[Decimal] = Field(None, ge=0)
    weight_unit: Optional[WeightUnit] = None
    length: Optional[Decimal] = Field(None, ge=0)
    width: Optional[Decimal] = Field(None, ge=0)
    height: Optional[Decimal] = Field(None, ge=0)
    dimension_unit: Optional[DimensionUnit] = None


class ProductUpdate(BaseUpdateSchema):
    """Product update schema. Stock changes go through restock."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    images: Optional[List[str]] = None
    price: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    is_available: Optional[bool] = None
    weight_value: Optional[Decimal] = Field(None, ge=0)
    weight_unit: Optional[WeightUnit] = None
    length: Optional[Decimal] = Field(None, ge=0)
    width: Optional[Decimal] = Field(None, ge=0)
    height: Optional[Decimal] = Field(None, ge=0)
    dimension_unit: Optional[DimensionUnit] = None


class AvailabilityUpdate(BaseCreateSchema):
    is_available: bool


class RestockRequest(BaseCreateSchema):
    quantity: int = Field(..., gt=0)


class ProductResponse(BaseResponseSchema):
    """Product response schema."""
    id: uuid.UUID
    retailer_id: uuid.UUID
    name: str
    description: Optional[str] = None
    category: str
    images: List[str] = []
    price: Decimal
    stock: int
    is_available: bool
    weight_value: Optional[Decimal] = None
    weight_unit: Optional[str] = None
    length: Optional[Decimal] = None
    width: Optional[Decimal] = None
    height: Optional[Decimal] = None
    dimension_unit: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def in_stock(self) -> bool:
        return self.stock > 0 and self.is_available
