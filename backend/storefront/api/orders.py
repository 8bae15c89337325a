"""Order endpoints: checkout, lookup and status updates with role enforcement."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings, get_settings
from storefront.core.deps import require_auth
from storefront.core.errors import ValidationError
from storefront.db.base import get_db
from storefront.models.order import OrderStatus, parse_order_status
from storefront.models.user import UserRole
from storefront.schemas.auth import Principal
from storefront.schemas.order import (
    CheckoutRequest,
    OrderListResponse,
    OrderPlacedResponse,
    OrderResponse,
    OrderStatusResponse,
    OrderStatusUpdate,
    PlacedOrderSummary,
)
from storefront.services import orders as order_service

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderPlacedResponse, status_code=status.HTTP_201_CREATED)
async def place_order(
    body: CheckoutRequest,
    principal: Principal = Depends(require_auth(UserRole.CUSTOMER, UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Validate, price and persist an order. Client-sent prices are ignored."""
    order_id, summary = await order_service.place_order(db, principal, body, settings)
    return OrderPlacedResponse(
        order_id=order_id,
        summary=PlacedOrderSummary(**summary.model_dump()),
    )


@router.get("", response_model=OrderListResponse)
async def list_orders(
    status_filter: str | None = Query(None, alias="status"),
    limit: int = Query(order_service.DEFAULT_LIST_LIMIT),
    principal: Principal = Depends(require_auth()),
    db: AsyncSession = Depends(get_db),
):
    """Newest first. Customers see their own orders; admins and riders see all."""
    wanted: OrderStatus | None = None
    if status_filter:
        wanted = parse_order_status(status_filter)
        if wanted is None:
            raise ValidationError("Status is invalid.", reason="invalidStatus", field="status")
    rows = await order_service.list_orders(db, principal, wanted, limit)
    return OrderListResponse(orders=[OrderResponse.from_order(o) for o in rows])


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    principal: Principal = Depends(require_auth()),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, principal, order_id)
    return OrderResponse.from_order(order)


@router.patch("/{order_id}/status", response_model=OrderStatusResponse)
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    principal: Principal = Depends(require_auth(UserRole.ADMIN, UserRole.RIDER)),
    db: AsyncSession = Depends(get_db),
):
    new_status = await order_service.update_order_status(db, order_id, body.status)
    return OrderStatusResponse(order_id=order_id.strip(), status=new_status)
