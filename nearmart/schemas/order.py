from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import uuid

from pydantic import Field

from nearmart.models.order import PaymentMethod, PaymentStatus
from nearmart.schemas.base import AddressInput, BaseCreateSchema, BaseResponseSchema


# ==================== REQUESTS ====================

class OrderCreate(BaseCreateSchema):
    """Checkout request. Address and phone default to the customer's profile."""
    payment_method: PaymentMethod
    delivery_address: Optional[AddressInput] = None
    delivery_phone: Optional[str] = Field(None, max_length=30)
    delivery_instructions: Optional[str] = None


class OrderStatusUpdate(BaseCreateSchema):
    status: str
    note: Optional[str] = None


class OrderCancelRequest(BaseCreateSchema):
    reason: Optional[str] = None


class PaymentStatusUpdate(BaseCreateSchema):
    payment_status: PaymentStatus
    transaction_id: Optional[str] = Field(None, max_length=100)


# ==================== RESPONSES ====================

class OrderItemResponse(BaseResponseSchema):
    product_id: uuid.UUID
    product_name: str
    product_image: Optional[str] = None
    retailer_id: uuid.UUID
    retailer_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class StatusHistoryResponse(BaseResponseSchema):
    status: str
    note: Optional[str] = None
    created_at: datetime


class OrderResponse(BaseResponseSchema):
    id: uuid.UUID
    order_number: str
    customer_id: uuid.UUID
    status: str
    cancel_reason: Optional[str] = None
    items: List[OrderItemResponse] = []
    subtotal: Decimal
    discount: Decimal
    coupon_code: Optional[str] = None
    tax: Decimal
    delivery_fee: Decimal
    total: Decimal
    payment_method: str
    payment_status: str
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    delivery_address: dict
    delivery_phone: Optional[str] = None
    delivery_instructions: Optional[str] = None
    expected_delivery_date: Optional[datetime] = None
    actual_delivery_date: Optional[datetime] = None
    tracking_number: Optional[str] = None
    status_history: List[StatusHistoryResponse] = []
    created_at: datetime
    updated_at: datetime


class OrderBrief(BaseResponseSchema):
    """Order list row."""
    id: uuid.UUID
    order_number: str
    status: str
    total: Decimal
    payment_status: str
    item_count: int
    created_at: datetime


class RetailerOrderResponse(BaseResponseSchema):
    """An order restricted to one retailer's lines."""
    id: uuid.UUID
    order_number: str
    customer_id: uuid.UUID
    status: str
    payment_method: str
    payment_status: str
    delivery_address: dict
    delivery_phone: Optional[str] = None
    delivery_instructions: Optional[str] = None
    items: List[OrderItemResponse] = []
    subtotal: Decimal
    created_at: datetime
