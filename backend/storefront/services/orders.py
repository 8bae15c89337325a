"""Order placement, lookup and status transitions.

Placement commits the staged address writes, the order row, its line items and one
stock decrement per line as a single batch. Stock is decremented from the quantity
checked during validation without re-checking at commit time, so two concurrent
checkouts of the last units can both succeed and drive stock negative.
"""

import json
import logging
import uuid
from collections.abc import Sequence

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Executable

from storefront.core.config import Settings
from storefront.core.errors import NotFound, StorageError, ValidationError
from storefront.db.batch import commit_batch
from storefront.models.order import Order, OrderItem, OrderStatus, parse_order_status
from storefront.models.product import Product
from storefront.schemas.auth import Principal
from storefront.schemas.order import CheckoutRequest, LineItem, OrderSummary
from storefront.services.addresses import StagedAddress, stage_checkout_address
from storefront.services.checkout import validate_order

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 1000


def generate_order_id() -> str:
    """Caller-visible order id: ORD- followed by 12 upper-case hex characters."""
    return f"ORD-{uuid.uuid4().hex[:12].upper()}"


def build_order_statement(
    order_id: str,
    summary: OrderSummary,
    *,
    user_id: uuid.UUID | None,
    delivery_address_id: uuid.UUID | None,
) -> Executable:
    return insert(Order).values(
        id=order_id,
        status=OrderStatus.PENDING,
        total_amount=summary.total,
        currency=summary.currency,
        customer_name=summary.customer.name,
        customer_phone=summary.customer.phone,
        customer_address=summary.customer.address,
        items_json=json.dumps([item.model_dump(mode="json") for item in summary.items]),
        delivery_slot=summary.delivery.slot,
        delivery_instructions=summary.delivery.instructions,
        payment_method=summary.payment.method,
        user_id=user_id,
        delivery_address_id=delivery_address_id,
    )


def build_item_statements(order_id: str, items: Sequence[LineItem]) -> list[Executable]:
    return [
        insert(OrderItem).values(
            id=uuid.uuid4(),
            order_id=order_id,
            product_id=item.product_id,
            product_name=item.name,
            unit_price=item.unit_price,
            quantity=item.quantity,
            line_total=item.line_total,
        )
        for item in items
    ]


def build_stock_statements(items: Sequence[LineItem]) -> list[Executable]:
    return [
        update(Product)
        .where(Product.id == item.product_id)
        .values(stock_quantity=Product.stock_quantity - item.quantity)
        .execution_options(synchronize_session=False)
        for item in items
    ]


async def commit_order(
    db: AsyncSession,
    principal: Principal,
    summary: OrderSummary,
    staged: StagedAddress | None = None,
) -> str:
    """Persist the order and everything it implies in one all-or-nothing batch."""
    staged = staged or StagedAddress()
    order_id = generate_order_id()
    statements = [
        # address rows first so the order's delivery_address_id resolves
        *staged.statements,
        build_order_statement(
            order_id,
            summary,
            user_id=principal.subject_id,
            delivery_address_id=staged.address_id,
        ),
        *build_item_statements(order_id, summary.items),
        *build_stock_statements(summary.items),
    ]
    await commit_batch(db, statements, "Unable to save your order right now. Please try again.")
    logger.info("Order %s placed by %s (total %s %s)", order_id, principal.subject_id, summary.total, summary.currency)
    return order_id


async def place_order(
    db: AsyncSession, principal: Principal, request: CheckoutRequest, settings: Settings
) -> tuple[str, OrderSummary]:
    summary = await validate_order(db, request, settings)
    staged = StagedAddress()
    if request.save_address:
        staged = await stage_checkout_address(
            db, principal.subject_id, summary, make_default=request.make_default
        )
    order_id = await commit_order(db, principal, summary, staged)
    return order_id, summary


async def get_order(db: AsyncSession, principal: Principal, order_id: str) -> Order:
    """Load one order. Customers only see their own; anything else is NotFound."""
    query = select(Order).where(Order.id == order_id.strip()).execution_options(populate_existing=True)
    if not principal.is_privileged:
        query = query.where(Order.user_id == principal.subject_id)
    try:
        result = await db.execute(query)
        order = result.scalar_one_or_none()
    except SQLAlchemyError:
        logger.exception("Failed to read order %s", order_id)
        raise StorageError("Unable to load order right now.")
    if order is None:
        raise NotFound("Order not found.")
    return order


async def list_orders(
    db: AsyncSession,
    principal: Principal,
    status: OrderStatus | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[Order]:
    limit = min(max(limit, 1), MAX_LIST_LIMIT)
    query = select(Order).execution_options(populate_existing=True)
    if not principal.is_privileged:
        query = query.where(Order.user_id == principal.subject_id)
    if status is not None:
        query = query.where(Order.status == status)
    query = query.order_by(Order.created_at.desc()).limit(limit)
    try:
        result = await db.execute(query)
    except SQLAlchemyError:
        logger.exception("Failed to read orders")
        raise StorageError("Unable to load orders right now.")
    return list(result.scalars().all())


async def update_order_status(db: AsyncSession, order_id: str, raw_status: object) -> OrderStatus:
    """Move an order to any known status, stamping updated_at.

    Transitions are not restricted: every status may follow every other.
    """
    order_id = order_id.strip() if isinstance(order_id, str) else ""
    if not order_id:
        raise ValidationError("Order ID is required.", reason="required", field="order_id")
    status = parse_order_status(raw_status)
    if status is None:
        raise ValidationError("Status is invalid.", reason="invalidStatus", field="status")

    try:
        result = await db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(status=status, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise NotFound("Order not found.")
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Failed to update status of order %s", order_id)
        await db.rollback()
        raise StorageError("Unable to update order right now.")
    logger.info("Order %s moved to %s", order_id, status.value)
    return status
