"""SQLAlchemy models."""

from storepulse.models.base import Base
from storepulse.models.cart import Cart, CartItem, CartStatus
from storepulse.models.customer import Customer
from storepulse.models.order import Order, OrderItem, Transaction
from storepulse.models.product import Product, Variant
from storepulse.models.tenant import Tenant

__all__ = [
    # Base
    "Base",
    # Tenancy
    "Tenant",
    # Customers
    "Customer",
    # Catalog
    "Product",
    "Variant",
    # Orders
    "Order",
    "OrderItem",
    "Transaction",
    # Carts & checkouts
    "Cart",
    "CartItem",
    "CartStatus",
]
