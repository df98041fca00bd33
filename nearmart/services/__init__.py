# Services module
from nearmart.services.auth_service import AuthService
from nearmart.services.profile_service import ProfileService
from nearmart.services.catalog_service import CatalogService
from nearmart.services.cart_service import CartService
from nearmart.services.order_pipeline import OrderPipeline
from nearmart.services.order_service import OrderService

# Collaborators
from nearmart.services.cache_service import get_cache
from nearmart.services.geocoder_service import GeocoderService, build_geocoder

__all__ = [
    "AuthService",
    "ProfileService",
    "CatalogService",
    "CartService",
    "OrderPipeline",
    "OrderService",
    # Collaborators
    "get_cache",
    "GeocoderService",
    "build_geocoder",
]
