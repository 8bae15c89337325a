"""SQLAlchemy models for the storefront."""

from storefront.models.user import User, UserRole, UserStatus
from storefront.models.address import Address
from storefront.models.product import Product
from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.models.admin_config import AdminConfig
from storefront.models.login_attempt import LoginAttempt

__all__ = [
    "User",
    "UserRole",
    "UserStatus",
    "Address",
    "Product",
    "Order",
    "OrderItem",
    "OrderStatus",
    "AdminConfig",
    "LoginAttempt",
]
