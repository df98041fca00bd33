"""
Base Schema Classes for Pydantic Models

Field names are snake_case in Python and camelCase on the wire
(`zip_code` <-> `zipCode`, `product_id` <-> `productId`). Both spellings are
accepted on input.

RULE: All response schemas that read from ORM models MUST inherit from BaseResponseSchema.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class ProductResponse(BaseResponseSchema):
            id: UUID
            name: str

        ProductResponse.model_validate(product).model_dump(by_alias=True, mode="json")
    """
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class BaseCreateSchema(BaseModel):
    """Base class for create/input schemas."""
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


class BaseUpdateSchema(BaseCreateSchema):
    """
    Base class for update/patch schemas.

    All fields are optional; only fields the client sent are applied
    (`model_dump(exclude_unset=True)`).
    """


# ==================== SHARED VALUE SCHEMAS ====================

class AddressInput(BaseCreateSchema):
    """Postal address. Completeness is checked by the services."""
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class AddressResponse(BaseResponseSchema):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class LocationInput(BaseCreateSchema):
    """GeoJSON Point: coordinates are [longitude, latitude]."""
    type: str = "Point"
    coordinates: List[float] = Field(..., min_length=2, max_length=2)

    @field_validator("type")
    @classmethod
    def must_be_point(cls, v: str) -> str:
        if v != "Point":
            raise ValueError("Location must be a GeoJSON Point")
        return v


def location_of(entity) -> Optional[dict]:
    """GeoJSON Point for an entity with longitude/latitude columns."""
    if entity.longitude is None or entity.latitude is None:
        return None
    return {"type": "Point", "coordinates": [entity.longitude, entity.latitude]}
