"""
Retailer API Endpoints

Store account, catalog management and order fulfillment.
"""

from typing import Optional
import uuid
import logging

from fastapi import APIRouter, Query, status

from nearmart.api.deps import DB, CurrentRetailer, Geocoder
from nearmart.schemas.auth import LoginRequest, RetailerSignupRequest
from nearmart.schemas.order import (
    OrderCancelRequest,
    OrderItemResponse,
    OrderResponse,
    OrderStatusUpdate,
    PaymentStatusUpdate,
    RetailerOrderResponse,
)
from nearmart.schemas.product import (
    AvailabilityUpdate,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    RestockRequest,
)
from nearmart.schemas.profile import RetailerProfileUpdate, RetailerResponse
from nearmart.services.auth_service import AuthService
from nearmart.services.catalog_service import CatalogService
from nearmart.services.order_service import OrderService, RetailerOrderView
from nearmart.services.profile_service import ProfileService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/retailer", tags=["Retailer"])


def _retailer_order_payload(view: RetailerOrderView) -> dict:
    order = view.order
    return RetailerOrderResponse(
        id=order.id,
        order_number=order.order_number,
        customer_id=order.customer_id,
        status=order.status,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        delivery_address=order.delivery_address,
        delivery_phone=order.delivery_phone,
        delivery_instructions=order.delivery_instructions,
        items=[OrderItemResponse.model_validate(item) for item in view.items],
        subtotal=view.subtotal,
        created_at=order.created_at,
    ).to_wire()


def _order_payload(order, retailer_id: uuid.UUID) -> dict:
    """Full order header with only this retailer's lines."""
    payload = OrderResponse.model_validate(order).to_wire()
    view = OrderService.retailer_view(order, retailer_id)
    payload["items"] = [OrderItemResponse.model_validate(i).to_wire() for i in view.items]
    payload["retailerSubtotal"] = str(view.subtotal)
    return payload


# ==================== AUTH ====================

@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(payload: RetailerSignupRequest, db: DB, geocoder: Geocoder):
    """Register a new retailer. The store address is geocoded when no location is given."""
    retailer, token = await AuthService(db, geocoder).signup_retailer(
        payload.model_dump(exclude_unset=True)
    )
    return {
        "success": True,
        "message": "Retailer registered successfully",
        "token": token,
        "retailer": RetailerResponse.model_validate(retailer).to_wire(),
    }


@router.post("/login")
async def login(payload: LoginRequest, db: DB):
    retailer, token = await AuthService(db).login_retailer(payload.email, payload.password)
    return {
        "success": True,
        "token": token,
        "retailer": RetailerResponse.model_validate(retailer).to_wire(),
    }


# ==================== PROFILE ====================

@router.get("/profile")
async def get_profile(retailer: CurrentRetailer):
    return {"success": True, "retailer": RetailerResponse.model_validate(retailer).to_wire()}


@router.put("/profile")
async def update_profile(
    payload: RetailerProfileUpdate,
    retailer: CurrentRetailer,
    db: DB,
    geocoder: Geocoder,
):
    updated = await ProfileService(db, geocoder).update_retailer(
        retailer.id, payload.model_dump(exclude_unset=True)
    )
    return {
        "success": True,
        "message": "Profile updated successfully",
        "retailer": RetailerResponse.model_validate(updated).to_wire(),
    }


# ==================== PRODUCTS ====================

@router.get("/products")
async def list_products(retailer: CurrentRetailer, db: DB):
    products = await CatalogService(db).list_retailer_products(retailer.id)
    return {
        "success": True,
        "count": len(products),
        "products": [ProductResponse.model_validate(p).to_wire() for p in products],
    }


@router.post("/products", status_code=status.HTTP_201_CREATED)
async def create_product(payload: ProductCreate, retailer: CurrentRetailer, db: DB):
    product = await CatalogService(db).create_product(retailer.id, payload.model_dump())
    return {
        "success": True,
        "message": "Product created successfully",
        "product": ProductResponse.model_validate(product).to_wire(),
    }


@router.put("/products/{product_id}")
async def update_product(
    product_id: uuid.UUID,
    payload: ProductUpdate,
    retailer: CurrentRetailer,
    db: DB,
):
    product = await CatalogService(db).update_product(
        retailer.id, product_id, payload.model_dump(exclude_unset=True)
    )
    return {
        "success": True,
        "message": "Product updated successfully",
        "product": ProductResponse.model_validate(product).to_wire(),
    }


@router.delete("/products/{product_id}")
async def delete_product(product_id: uuid.UUID, retailer: CurrentRetailer, db: DB):
    await CatalogService(db).delete_product(retailer.id, product_id)
    return {"success": True, "message": "Product deleted successfully"}


@router.put("/products/{product_id}/availability")
async def set_product_availability(
    product_id: uuid.UUID,
    payload: AvailabilityUpdate,
    retailer: CurrentRetailer,
    db: DB,
):
    product = await CatalogService(db).set_owned_availability(
        retailer.id, product_id, payload.is_available
    )
    return {"success": True, "product": ProductResponse.model_validate(product).to_wire()}


@router.post("/products/{product_id}/restock")
async def restock_product(
    product_id: uuid.UUID,
    payload: RestockRequest,
    retailer: CurrentRetailer,
    db: DB,
):
    product = await CatalogService(db).restock(retailer.id, product_id, payload.quantity)
    return {"success": True, "product": ProductResponse.model_validate(product).to_wire()}


# ==================== ORDERS ====================

@router.get("/orders")
async def list_orders(
    retailer: CurrentRetailer,
    db: DB,
    status: Optional[str] = Query(None),
):
    """Orders containing this store's products, showing only this store's lines."""
    views = await OrderService(db).list_retailer_orders(
        retailer.id, status=status.lower() if status else None
    )
    return {
        "success": True,
        "count": len(views),
        "orders": [_retailer_order_payload(view) for view in views],
    }


@router.put("/orders/{order_id}/status")
async def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    retailer: CurrentRetailer,
    db: DB,
):
    order = await OrderService(db).update_status(
        order_id, payload.status, payload.note, retailer_id=retailer.id
    )
    return {
        "success": True,
        "message": f"Order status updated to {order.status}",
        "order": _order_payload(order, retailer.id),
    }


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: uuid.UUID,
    payload: OrderCancelRequest,
    retailer: CurrentRetailer,
    db: DB,
):
    order = await OrderService(db).cancel(order_id, payload.reason, retailer_id=retailer.id)
    return {
        "success": True,
        "message": "Order cancelled",
        "order": _order_payload(order, retailer.id),
    }


@router.put("/orders/{order_id}/payment")
async def update_order_payment(
    order_id: uuid.UUID,
    payload: PaymentStatusUpdate,
    retailer: CurrentRetailer,
    db: DB,
):
    order = await OrderService(db).update_payment(
        order_id, payload.payment_status, payload.transaction_id, retailer_id=retailer.id
    )
    return {
        "success": True,
        "message": f"Payment status updated to {order.payment_status}",
        "order": _order_payload(order, retailer.id),
    }
