"""Pricing policy: Settings defaults overridden by admin_config rows."""

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings
from storefront.models.admin_config import AdminConfig
from storefront.schemas.order import PricingPolicy

logger = logging.getLogger(__name__)

POLICY_KEYS = {
    "minimumOrderAmount": "minimum_order_amount",
    "freeDeliveryThreshold": "free_delivery_threshold",
    "deliveryFeeBelowThreshold": "delivery_fee_below_threshold",
}


def default_policy(settings: Settings) -> PricingPolicy:
    return PricingPolicy(
        minimum_order_amount=settings.MINIMUM_ORDER_AMOUNT,
        free_delivery_threshold=settings.FREE_DELIVERY_THRESHOLD,
        delivery_fee_below_threshold=settings.DELIVERY_FEE_BELOW_THRESHOLD,
    )


def _parse_amount(raw: str | None) -> Decimal | None:
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


async def read_pricing_policy(db: AsyncSession, settings: Settings) -> PricingPolicy:
    """Resolve the pricing policy. A storage fault falls back to the defaults."""
    values = default_policy(settings).model_dump()
    try:
        result = await db.execute(select(AdminConfig.key, AdminConfig.value))
        rows = result.all()
    except SQLAlchemyError:
        logger.exception("Failed to read admin config; using defaults")
        await db.rollback()
        return PricingPolicy(**values)

    for key, raw in rows:
        field = POLICY_KEYS.get(key)
        if field is None:
            continue
        amount = _parse_amount(raw)
        if amount is not None:
            values[field] = amount
    return PricingPolicy(**values)
