"""Checkout and order schemas for API request/response."""

import json
import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from storefront.models.order import OrderStatus
from storefront.schemas.fields import LooseList, LooseText, Money

logger = logging.getLogger(__name__)


# ── Checkout request ───────────────────────────────
class CheckoutCustomer(BaseModel):
    name: LooseText = None
    phone: LooseText = None
    address: LooseText = None
    address_line2: LooseText = None
    area: LooseText = None
    city: LooseText = None
    state: LooseText = None
    postal_code: LooseText = None
    landmark: LooseText = None


class CheckoutDelivery(BaseModel):
    slot: LooseText = None
    instructions: LooseText = None


class CheckoutPayment(BaseModel):
    method: LooseText = None


class CheckoutRequest(BaseModel):
    # Entries are checked one by one by the order validator, not by the schema;
    # any client-sent price is ignored.
    items: LooseList = Field(default_factory=list)
    customer: CheckoutCustomer = Field(default_factory=CheckoutCustomer)
    delivery: CheckoutDelivery = Field(default_factory=CheckoutDelivery)
    payment: CheckoutPayment = Field(default_factory=CheckoutPayment)
    save_address: bool = True
    make_default: bool = False


# ── Normalized order summary ───────────────────────
class LineItem(BaseModel):
    product_id: str
    name: str
    quantity: int
    unit_price: Money
    line_total: Money


class CustomerSnapshot(BaseModel):
    name: str
    phone: str
    address: str  # flattened, comma-joined delivery address
    address_line1: str
    address_line2: str | None = None
    area: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    landmark: str | None = None


class DeliveryInfo(BaseModel):
    slot: str
    instructions: str | None = None


class PaymentInfo(BaseModel):
    method: str


class PricingPolicy(BaseModel):
    minimum_order_amount: Money
    free_delivery_threshold: Money
    delivery_fee_below_threshold: Money


class OrderSummary(BaseModel):
    customer: CustomerSnapshot
    items: list[LineItem]
    total: Money
    currency: str
    delivery: DeliveryInfo
    payment: PaymentInfo
    policy: PricingPolicy


class PlacedOrderSummary(OrderSummary):
    status: OrderStatus = OrderStatus.PENDING


class OrderPlacedResponse(BaseModel):
    message: str = "Order received! We will call to confirm within 15 minutes."
    order_id: str
    summary: PlacedOrderSummary


# ── Stored orders ──────────────────────────────────
class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: OrderStatus
    total_amount: Money
    currency: str
    customer_name: str
    customer_phone: str | None = None
    customer_address: str | None = None
    items: list[dict[str, Any]]
    delivery_slot: str | None = None
    delivery_instructions: str | None = None
    payment_method: str | None = None
    user_id: UUID | None = None
    delivery_address_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            id=order.id,
            status=order.status,
            total_amount=order.total_amount,
            currency=order.currency,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            customer_address=order.customer_address,
            items=_parse_items(order.items_json),
            delivery_slot=order.delivery_slot,
            delivery_instructions=order.delivery_instructions,
            payment_method=order.payment_method,
            user_id=order.user_id,
            delivery_address_id=order.delivery_address_id,
            created_at=order.created_at,
            updated_at=order.updated_at or order.created_at,
        )


def _parse_items(items_json: str | None) -> list[dict[str, Any]]:
    if not items_json:
        return []
    try:
        parsed = json.loads(items_json)
    except ValueError:
        logger.error("Failed to parse order items snapshot")
        return []
    return parsed if isinstance(parsed, list) else []


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]


class OrderStatusUpdate(BaseModel):
    status: LooseText = None


class OrderStatusResponse(BaseModel):
    order_id: str
    status: OrderStatus
