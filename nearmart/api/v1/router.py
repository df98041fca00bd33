from fastapi import APIRouter

from nearmart.api.v1.endpoints import (
    customer,
    retailer,
)


api_router = APIRouter(prefix="/api/v1")

# ==================== Customer ====================
api_router.include_router(customer.router)

# ==================== Retailer ====================
api_router.include_router(retailer.router)
