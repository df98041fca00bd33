"""
Marketplace error taxonomy.

Services raise these exceptions; the API layer renders them as
`{"success": false, "kind": ..., "message": ..., **details}` with the
class's HTTP status code (see nearmart.main).
"""

from typing import Any, Dict, List, Optional


class MarketplaceError(Exception):
    """Base exception for every caller-visible failure."""

    kind: str = "Internal"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "kind": self.kind,
            "message": self.message,
            **self.details,
        }


class InvalidArgumentError(MarketplaceError):
    kind = "InvalidArgument"
    status_code = 400


class NotFoundError(MarketplaceError):
    kind = "NotFound"
    status_code = 404


class UnavailableError(MarketplaceError):
    """Product flagged unavailable or short on stock at cart time."""
    kind = "Unavailable"
    status_code = 409


class InsufficientStockError(MarketplaceError):
    kind = "InsufficientStock"
    status_code = 409


class CrossRetailerConflictError(MarketplaceError):
    kind = "CrossRetailerConflict"
    status_code = 409


class EmptyCartError(MarketplaceError):
    kind = "EmptyCart"
    status_code = 400


class ItemsUnavailableError(MarketplaceError):
    """Checkout-time verification failed for one or more cart lines."""
    kind = "ItemsUnavailable"
    status_code = 409

    def __init__(self, message: str, unavailable_items: List[Dict[str, Any]]):
        self.unavailable_items = unavailable_items
        super().__init__(message, {"unavailableItems": unavailable_items})


class InvalidTransitionError(MarketplaceError):
    kind = "InvalidTransition"
    status_code = 409


class ConflictError(MarketplaceError):
    kind = "Conflict"
    status_code = 409


class PermissionDeniedError(MarketplaceError):
    kind = "PermissionDenied"
    status_code = 403


class InternalError(MarketplaceError):
    kind = "Internal"
    status_code = 500


class GeocodingError(InternalError):
    """The geocoding provider failed or returned nothing usable."""
    status_code = 502
