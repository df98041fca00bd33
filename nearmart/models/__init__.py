from nearmart.models.retailer import Retailer
from nearmart.models.customer import Customer, PreferredDeliveryTime
from nearmart.models.product import Product, WeightUnit, DimensionUnit
from nearmart.models.cart import Cart, CartItem
from nearmart.models.order import (
    Order, OrderItem, OrderStatusHistory,
    OrderStatus, PaymentStatus, PaymentMethod,
)

__all__ = [
    "Retailer",
    "Customer",
    "PreferredDeliveryTime",
    "Product",
    "WeightUnit",
    "DimensionUnit",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
]
