"""
Customer API Endpoints

Account, store discovery, cart and checkout for shoppers.
"""

from decimal import Decimal
from math import ceil
from typing import Optional
import uuid
import logging

from fastapi import APIRouter, Query, status

from nearmart.api.deps import DB, CurrentCustomer, Geocoder
from nearmart.core.errors import NotFoundError
from nearmart.schemas.auth import CustomerSignupRequest, LoginRequest
from nearmart.schemas.base import location_of
from nearmart.schemas.cart import (
    AvailabilityReportResponse,
    CartAddRequest,
    CartItemQuantityUpdate,
    CartResponse,
)
from nearmart.schemas.order import OrderBrief, OrderCreate, OrderResponse
from nearmart.schemas.product import ProductResponse
from nearmart.schemas.profile import (
    CustomerProfileUpdate,
    CustomerResponse,
    NearbyStoreResponse,
    RetailerResponse,
)
from nearmart.services.auth_service import AuthService
from nearmart.services.cart_service import CartService
from nearmart.services.catalog_service import CatalogService
from nearmart.services.order_pipeline import OrderPipeline
from nearmart.services.order_service import OrderService
from nearmart.services.profile_service import ProfileService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/customer", tags=["Customer"])


def _cart_payload(cart) -> dict:
    return CartResponse.model_validate(cart).to_wire()


# ==================== AUTH ====================

@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(payload: CustomerSignupRequest, db: DB, geocoder: Geocoder):
    """Register a new customer account."""
    customer, token = await AuthService(db, geocoder).signup_customer(
        payload.model_dump(exclude_unset=True)
    )
    return {
        "success": True,
        "message": "Customer registered successfully",
        "token": token,
        "customer": CustomerResponse.model_validate(customer).to_wire(),
    }


@router.post("/login")
async def login(payload: LoginRequest, db: DB):
    customer, token = await AuthService(db).login_customer(payload.email, payload.password)
    return {
        "success": True,
        "token": token,
        "customer": CustomerResponse.model_validate(customer).to_wire(),
    }


# ==================== PROFILE ====================

@router.get("/profile")
async def get_profile(customer: CurrentCustomer):
    return {"success": True, "customer": CustomerResponse.model_validate(customer).to_wire()}


@router.put("/profile")
async def update_profile(
    payload: CustomerProfileUpdate,
    customer: CurrentCustomer,
    db: DB,
    geocoder: Geocoder,
):
    updated = await ProfileService(db, geocoder).update_customer(
        customer.id, payload.model_dump(exclude_unset=True)
    )
    return {
        "success": True,
        "message": "Profile updated successfully",
        "customer": CustomerResponse.model_validate(updated).to_wire(),
    }


# ==================== STORES ====================

@router.get("/stores")
async def nearby_stores(
    customer: CurrentCustomer,
    db: DB,
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius: Optional[float] = Query(None, gt=0, description="Search radius in km"),
):
    """Stores within `radius` km, nearest first. Defaults to the customer's saved location."""
    stores = await ProfileService(db).find_nearby_stores(
        customer.id, latitude=lat, longitude=lng, radius_km=radius
    )
    return {
        "success": True,
        "count": len(stores),
        "stores": [
            NearbyStoreResponse(
                id=retailer.id,
                name=retailer.store_name,
                description=retailer.store_description,
                phone=retailer.phone,
                location=location_of(retailer),
                distance=distance,
            ).to_wire()
            for retailer, distance in stores
        ],
    }


@router.get("/stores/{store_id}/products")
async def store_products(
    store_id: uuid.UUID,
    customer: CurrentCustomer,
    db: DB,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[str] = Query(None),
    min_price: Optional[Decimal] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice", ge=0),
    search: Optional[str] = Query(None),
):
    """Available products of one store."""
    catalog = CatalogService(db)
    store = await catalog.get_retailer(store_id)
    products, total = await catalog.list_store_products(
        store_id,
        page=page,
        limit=limit,
        category=category,
        min_price=min_price,
        max_price=max_price,
        search=search,
    )
    return {
        "success": True,
        "store": RetailerResponse.model_validate(store).to_wire(),
        "count": len(products),
        "total": total,
        "page": page,
        "pages": ceil(total / limit) if total > 0 else 1,
        "products": [ProductResponse.model_validate(p).to_wire() for p in products],
    }


# ==================== CART ====================

@router.get("/cart")
async def get_cart(customer: CurrentCustomer, db: DB):
    cart = await CartService(db).get_cart(customer.id)
    return {"success": True, "cart": _cart_payload(cart)}


@router.post("/cart/add")
async def add_to_cart(payload: CartAddRequest, customer: CurrentCustomer, db: DB):
    cart = await CartService(db).add_item(customer.id, payload.product_id, payload.quantity)
    return {"success": True, "message": "Item added to cart", "cart": _cart_payload(cart)}


@router.put("/cart/items/{product_id}")
async def update_cart_item(
    product_id: uuid.UUID,
    payload: CartItemQuantityUpdate,
    customer: CurrentCustomer,
    db: DB,
):
    """Set a line's quantity. Zero or less removes the line."""
    cart = await CartService(db).update_item_quantity(customer.id, product_id, payload.quantity)
    return {"success": True, "message": "Cart updated", "cart": _cart_payload(cart)}


@router.delete("/cart/remove/{product_id}")
async def remove_from_cart(product_id: uuid.UUID, customer: CurrentCustomer, db: DB):
    service = CartService(db)
    cart = await service.find_cart(customer.id)
    if cart is None or cart.find_item(product_id) is None:
        raise NotFoundError("Item not found in cart", {"productId": str(product_id)})

    cart = await service.remove_item(customer.id, product_id)
    return {"success": True, "message": "Item removed from cart", "cart": _cart_payload(cart)}


@router.get("/cart/verify")
async def verify_cart(customer: CurrentCustomer, db: DB):
    """Re-check every cart line against current stock and availability."""
    report = await CartService(db).verify_availability(customer.id)
    return {"success": True, **AvailabilityReportResponse.model_validate(report).to_wire()}


# ==================== ORDERS ====================

@router.post("/order", status_code=status.HTTP_201_CREATED)
async def place_order(payload: OrderCreate, customer: CurrentCustomer, db: DB):
    """Commit the customer's cart as an order."""
    order = await OrderPipeline(db).commit_for_customer(
        customer.id,
        payload.payment_method,
        delivery_address=(
            payload.delivery_address.model_dump() if payload.delivery_address else None
        ),
        delivery_phone=payload.delivery_phone,
        delivery_instructions=payload.delivery_instructions,
    )
    return {
        "success": True,
        "message": "Order placed successfully",
        "order": OrderResponse.model_validate(order).to_wire(),
    }


@router.get("/orders")
async def list_orders(
    customer: CurrentCustomer,
    db: DB,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None),
):
    """Order history, newest first."""
    orders, total = await OrderService(db).list_customer_orders(
        customer.id, page=page, limit=limit, status=status.lower() if status else None
    )
    return {
        "success": True,
        "count": len(orders),
        "total": total,
        "page": page,
        "pages": ceil(total / limit) if total > 0 else 1,
        "orders": [OrderBrief.model_validate(o).to_wire() for o in orders],
    }


@router.get("/orders/{order_id}")
async def get_order(order_id: uuid.UUID, customer: CurrentCustomer, db: DB):
    order = await OrderService(db).get_customer_order(customer.id, order_id)
    return {"success": True, "order": OrderResponse.model_validate(order).to_wire()}
