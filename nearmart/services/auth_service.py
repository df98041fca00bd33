from typing import Optional, Tuple
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from nearmart.core.address import normalize_address
from nearmart.core.errors import ConflictError, InvalidArgumentError
from nearmart.core.security import (
    ROLE_CUSTOMER,
    ROLE_RETAILER,
    create_access_token,
    get_password_hash,
    verify_password,
)
from nearmart.models.customer import Customer
from nearmart.models.retailer import Retailer
from nearmart.services.geocoder_service import GeocoderService, validate_coordinates

logger = logging.getLogger(__name__)


def parse_location(location: Optional[dict]) -> Tuple[Optional[float], Optional[float]]:
    """(longitude, latitude) from a GeoJSON Point, or (None, None) when absent."""
    if location is None:
        return None, None
    if not isinstance(location, dict):
        location = {}
    coordinates = location.get("coordinates")
    if (
        location.get("type", "Point") != "Point"
        or not isinstance(coordinates, (list, tuple))
        or len(coordinates) != 2
    ):
        raise InvalidArgumentError(
            "Invalid location format. Must be GeoJSON Point with coordinates [longitude, latitude]"
        )
    longitude, latitude = coordinates
    validate_coordinates(longitude, latitude)
    return float(longitude), float(latitude)


class AuthService:
    """Signup and login for customers and retailers."""

    def __init__(self, db: AsyncSession, geocoder: Optional[GeocoderService] = None):
        self.db = db
        self.geocoder = geocoder

    async def _resolve_location(
        self,
        address: Optional[dict],
        location: Optional[dict],
    ) -> Tuple[Optional[float], Optional[float]]:
        longitude, latitude = parse_location(location)
        if longitude is None and address and self.geocoder is not None:
            point = await self.geocoder.geocode(address)
            longitude, latitude = point.longitude, point.latitude
        return longitude, latitude

    # ==================== CUSTOMERS ====================

    async def signup_customer(self, data: dict) -> Tuple[Customer, str]:
        """
        Register a customer.

        Args:
            data: name, email, password, phone, address, optional location
                  (GeoJSON Point) and delivery preferences

        Returns:
            (customer, access token)
        """
        email = data["email"].lower()
        existing = await self.db.execute(select(Customer.id).where(Customer.email == email))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("Customer with this email already exists", {"email": email})

        address = normalize_address(data.get("address"))
        longitude, latitude = await self._resolve_location(address, data.get("location"))

        customer = Customer(
            name=data["name"],
            email=email,
            password_hash=get_password_hash(data["password"]),
            phone=data.get("phone"),
            longitude=longitude,
            latitude=latitude,
            **address,
        )
        if data.get("preferred_time"):
            customer.preferred_time = data["preferred_time"]
        if data.get("contactless_delivery") is not None:
            customer.contactless_delivery = data["contactless_delivery"]
        if data.get("delivery_instructions"):
            customer.delivery_instructions = data["delivery_instructions"]

        self.db.add(customer)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Customer with this email already exists", {"email": email})
        await self.db.refresh(customer)

        logger.info(f"Customer {customer.id} registered")
        return customer, create_access_token(customer.id, ROLE_CUSTOMER)

    async def login_customer(self, email: str, password: str) -> Tuple[Customer, str]:
        result = await self.db.execute(select(Customer).where(Customer.email == email.lower()))
        customer = result.scalar_one_or_none()
        if customer is None or not verify_password(password, customer.password_hash):
            logger.warning(f"Failed customer login for {email}")
            raise InvalidArgumentError("Invalid credentials")
        return customer, create_access_token(customer.id, ROLE_CUSTOMER)

    # ==================== RETAILERS ====================

    async def signup_retailer(self, data: dict) -> Tuple[Retailer, str]:
        """Register a retailer. Either an address or a location is required."""
        email = data["email"].lower()
        existing = await self.db.execute(select(Retailer.id).where(Retailer.email == email))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("A retailer with this email already exists", {"email": email})

        raw_address = data.get("address")
        location = data.get("location")
        if not raw_address and not location:
            raise InvalidArgumentError("Either address or location is required")

        address = normalize_address(raw_address) if raw_address else {}
        longitude, latitude = await self._resolve_location(address, location)

        retailer = Retailer(
            name=data["name"],
            email=email,
            password_hash=get_password_hash(data["password"]),
            phone=data.get("phone"),
            store_name=data["store_name"],
            store_description=data.get("store_description"),
            longitude=longitude,
            latitude=latitude,
            **address,
        )
        self.db.add(retailer)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("A retailer with this email already exists", {"email": email})
        await self.db.refresh(retailer)

        logger.info(f"Retailer {retailer.id} registered ({retailer.store_name})")
        return retailer, create_access_token(retailer.id, ROLE_RETAILER)

    async def login_retailer(self, email: str, password: str) -> Tuple[Retailer, str]:
        result = await self.db.execute(select(Retailer).where(Retailer.email == email.lower()))
        retailer = result.scalar_one_or_none()
        if retailer is None or not verify_password(password, retailer.password_hash):
            logger.warning(f"Failed retailer login for {email}")
            raise InvalidArgumentError("Invalid credentials")
        return retailer, create_access_token(retailer.id, ROLE_RETAILER)
