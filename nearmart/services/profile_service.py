"""
Profile Service - customer and retailer profiles, nearby store discovery.
"""
from math import radians, cos, sin, asin, sqrt
from typing import List, Optional, Tuple
import uuid
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nearmart.config import settings
from nearmart.core.address import normalize_address
from nearmart.core.enum_utils import to_enum
from nearmart.core.errors import InvalidArgumentError, NotFoundError
from nearmart.models.customer import Customer, PreferredDeliveryTime
from nearmart.models.retailer import Retailer
from nearmart.services.auth_service import parse_location
from nearmart.services.geocoder_service import GeocoderService, validate_coordinates

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = sin(dlat/2)**2 + cos(lat1) * cos(lat2) * sin(dlon/2)**2
    c = 2 * asin(sqrt(a))

    return EARTH_RADIUS_KM * c


class ProfileService:
    """Customer and retailer profile reads and updates."""

    def __init__(self, db: AsyncSession, geocoder: Optional[GeocoderService] = None):
        self.db = db
        self.geocoder = geocoder

    async def _apply_address(self, entity, data: dict) -> None:
        """Copy a new address/location onto a customer or retailer, geocoding when needed."""
        longitude, latitude = parse_location(data.get("location"))

        if data.get("address") is not None:
            address = normalize_address(data["address"])
            for field, value in address.items():
                setattr(entity, field, value)
            if longitude is None and self.geocoder is not None:
                point = await self.geocoder.geocode(address)
                longitude, latitude = point.longitude, point.latitude

        if longitude is not None:
            entity.longitude = longitude
            entity.latitude = latitude

    # ==================== CUSTOMER ====================

    async def get_customer(self, customer_id: uuid.UUID) -> Customer:
        customer = await self.db.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("Customer not found", {"customerId": str(customer_id)})
        return customer

    async def update_customer(self, customer_id: uuid.UUID, data: dict) -> Customer:
        customer = await self.get_customer(customer_id)

        if data.get("name"):
            customer.name = data["name"]
        if data.get("phone"):
            customer.phone = data["phone"]

        await self._apply_address(customer, data)

        if data.get("preferred_time") is not None:
            preferred = to_enum(data["preferred_time"], PreferredDeliveryTime)
            if preferred is None:
                raise InvalidArgumentError(
                    "Invalid preferred time. Must be one of: morning, afternoon, evening, anytime",
                    {"preferredTime": data["preferred_time"]},
                )
            customer.preferred_time = preferred.value
        if data.get("contactless_delivery") is not None:
            customer.contactless_delivery = data["contactless_delivery"]
        if "delivery_instructions" in data:
            customer.delivery_instructions = data["delivery_instructions"]

        await self.db.commit()
        await self.db.refresh(customer)
        logger.info(f"Customer {customer_id} profile updated")
        return customer

    async def find_nearby_stores(
        self,
        customer_id: uuid.UUID,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        radius_km: Optional[float] = None,
    ) -> List[Tuple[Retailer, float]]:
        """
        Retailers within `radius_km` of a point, nearest first.

        Uses the customer's stored location when no coordinates are given.
        """
        if latitude is None or longitude is None:
            customer = await self.get_customer(customer_id)
            if not customer.has_location:
                raise InvalidArgumentError(
                    "Location not found. Please provide lat and lng parameters "
                    "or update your profile with location"
                )
            latitude, longitude = customer.latitude, customer.longitude
        validate_coordinates(longitude, latitude)

        radius = settings.NEARBY_STORES_DEFAULT_RADIUS_KM if radius_km is None else radius_km
        if radius <= 0:
            raise InvalidArgumentError("Radius must be positive", {"radius": radius})

        result = await self.db.execute(
            select(Retailer).where(
                Retailer.latitude.is_not(None),
                Retailer.longitude.is_not(None),
            )
        )

        stores = []
        for retailer in result.scalars().all():
            distance = haversine_km(latitude, longitude, retailer.latitude, retailer.longitude)
            if distance <= radius:
                stores.append((retailer, round(distance, 2)))

        stores.sort(key=lambda pair: pair[1])
        return stores

    # ==================== RETAILER ====================

    async def get_retailer(self, retailer_id: uuid.UUID) -> Retailer:
        retailer = await self.db.get(Retailer, retailer_id)
        if retailer is None:
            raise NotFoundError("Retailer not found", {"retailerId": str(retailer_id)})
        return retailer

    async def update_retailer(self, retailer_id: uuid.UUID, data: dict) -> Retailer:
        retailer = await self.get_retailer(retailer_id)

        for field in ("name", "phone", "store_name"):
            if data.get(field):
                setattr(retailer, field, data[field])
        if "store_description" in data:
            retailer.store_description = data["store_description"]

        await self._apply_address(retailer, data)

        await self.db.commit()
        await self.db.refresh(retailer)
        logger.info(f"Retailer {retailer_id} profile updated")
        return retailer
