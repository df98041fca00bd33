from typing import Annotated, Optional
import uuid
import logging

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from nearmart.database import get_db
from nearmart.core.security import ROLE_CUSTOMER, ROLE_RETAILER, verify_access_token
from nearmart.models.customer import Customer
from nearmart.models.retailer import Retailer
from nearmart.services.geocoder_service import GeocoderService, build_geocoder


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _authenticate(
    credentials: Optional[HTTPAuthorizationCredentials],
    required_role: str,
) -> uuid.UUID:
    """Validate the bearer token and its role. Returns the subject id."""
    if credentials is None:
        raise _credentials_exception()

    verified = verify_access_token(credentials.credentials)
    if verified is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise _credentials_exception()

    subject, role = verified
    if role != required_role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access denied. {required_role.capitalize()} role required",
        )

    try:
        return uuid.UUID(subject)
    except ValueError:
        logger.warning(f"Invalid subject in token: {subject}")
        raise _credentials_exception()


async def get_current_customer(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Customer:
    """Dependency returning the authenticated customer."""
    customer_id = _authenticate(credentials, ROLE_CUSTOMER)
    customer = await db.get(Customer, customer_id)
    if customer is None:
        logger.warning(f"Customer {customer_id} from token not found")
        raise _credentials_exception()
    return customer


async def get_current_retailer(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Retailer:
    """Dependency returning the authenticated retailer."""
    retailer_id = _authenticate(credentials, ROLE_RETAILER)
    retailer = await db.get(Retailer, retailer_id)
    if retailer is None:
        logger.warning(f"Retailer {retailer_id} from token not found")
        raise _credentials_exception()
    return retailer


def get_geocoder(request: Request) -> GeocoderService:
    """The application's geocoder, built on first use."""
    geocoder = getattr(request.app.state, "geocoder", None)
    if geocoder is None:
        geocoder = build_geocoder()
        request.app.state.geocoder = geocoder
    return geocoder


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
CurrentCustomer = Annotated[Customer, Depends(get_current_customer)]
CurrentRetailer = Annotated[Retailer, Depends(get_current_retailer)]
Geocoder = Annotated[GeocoderService, Depends(get_geocoder)]
