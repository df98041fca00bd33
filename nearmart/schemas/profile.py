from datetime import datetime
from typing import Optional
import uuid

from pydantic import Field, computed_field

from nearmart.models.customer import PreferredDeliveryTime
from nearmart.schemas.base import (
    AddressInput,
    AddressResponse,
    BaseResponseSchema,
    BaseUpdateSchema,
    LocationInput,
    location_of,
)


# ==================== CUSTOMER ====================

class CustomerProfileUpdate(BaseUpdateSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[AddressInput] = None
    location: Optional[LocationInput] = None
    preferred_time: Optional[PreferredDeliveryTime] = None
    contactless_delivery: Optional[bool] = None
    delivery_instructions: Optional[str] = None


class CustomerResponse(BaseResponseSchema):
    id: uuid.UUID
    name: str
    email: str
    phone: Optional[str] = None
    address: AddressResponse
    longitude: Optional[float] = Field(None, exclude=True)
    latitude: Optional[float] = Field(None, exclude=True)
    preferred_time: str
    contactless_delivery: bool
    delivery_instructions: Optional[str] = None
    created_at: datetime

    @computed_field
    @property
    def location(self) -> Optional[dict]:
        return location_of(self)


# ==================== RETAILER ====================

class RetailerProfileUpdate(BaseUpdateSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    store_name: Optional[str] = Field(None, min_length=1, max_length=200)
    store_description: Optional[str] = None
    address: Optional[AddressInput] = None
    location: Optional[LocationInput] = None


class RetailerResponse(BaseResponseSchema):
    id: uuid.UUID
    name: str
    email: str
    phone: Optional[str] = None
    store_name: str
    store_description: Optional[str] = None
    address: AddressResponse
    longitude: Optional[float] = Field(None, exclude=True)
    latitude: Optional[float] = Field(None, exclude=True)
    created_at: datetime

    @computed_field
    @property
    def location(self) -> Optional[dict]:
        return location_of(self)


class NearbyStoreResponse(BaseResponseSchema):
    """A store as listed to customers browsing nearby."""
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[dict] = None
    distance: float = Field(..., description="Distance in kilometres")
