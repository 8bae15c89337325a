from storefront.schemas.auth import (
    RegisterRequest, LoginRequest, ProfileUpdate, PublicUser, SessionResponse, Principal,
)
from storefront.schemas.address import AddressIn, AddressResponse, AddressListResponse
from storefront.schemas.order import (
    CheckoutRequest, OrderSummary, OrderPlacedResponse, OrderResponse, OrderListResponse,
)

__all__ = [
    "RegisterRequest", "LoginRequest", "ProfileUpdate", "PublicUser", "SessionResponse", "Principal",
    "AddressIn", "AddressResponse", "AddressListResponse",
    "CheckoutRequest", "OrderSummary", "OrderPlacedResponse", "OrderResponse", "OrderListResponse",
]
