from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import uuid

from nearmart.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== REQUESTS ====================

class CartAddRequest(BaseCreateSchema):
    product_id: uuid.UUID
    quantity: int = 1


class CartItemQuantityUpdate(BaseCreateSchema):
    """A quantity of zero or less removes the line."""
    quantity: int


# ==================== RESPONSES ====================

class CartItemResponse(BaseResponseSchema):
    product_id: uuid.UUID
    retailer_id: uuid.UUID
    product_name: str
    product_image: Optional[str] = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    added_at: datetime


class CartResponse(BaseResponseSchema):
    id: uuid.UUID
    customer_id: uuid.UUID
    retailer_id: Optional[uuid.UUID] = None
    items: List[CartItemResponse] = []
    item_count: int
    coupon_code: Optional[str] = None
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    delivery_fee: Decimal
    total: Decimal


class AvailabilityReportResponse(BaseResponseSchema):
    is_valid: bool
    unavailable_items: List[dict] = []
