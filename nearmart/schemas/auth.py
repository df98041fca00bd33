from typing import Optional

from pydantic import EmailStr, Field

from nearmart.models.customer import PreferredDeliveryTime
from nearmart.schemas.base import AddressInput, BaseCreateSchema, LocationInput


class LoginRequest(BaseCreateSchema):
    email: EmailStr
    password: str = Field(..., min_length=1)


class CustomerSignupRequest(BaseCreateSchema):
    """Customer registration. Location is geocoded from the address when omitted."""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = Field(None, max_length=30)
    address: AddressInput
    location: Optional[LocationInput] = None
    preferred_time: Optional[PreferredDeliveryTime] = None
    contactless_delivery: Optional[bool] = None
    delivery_instructions: Optional[str] = None


class RetailerSignupRequest(BaseCreateSchema):
    """Retailer registration. Either address or location is required."""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    store_name: str = Field(..., min_length=1, max_length=200)
    store_description: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[AddressInput] = None
    location: Optional[LocationInput] = None
