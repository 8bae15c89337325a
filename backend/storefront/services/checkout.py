"""Order validation: re-price a raw checkout against the live catalog.

Nothing the client sends about money is trusted. Every line is priced from the
product row read here, quantities are bounded per line and against stock, and the
customer/delivery/payment fields are normalized into an immutable snapshot.
Checks run in a fixed order so the first violation reported is deterministic.
"""

import enum
import logging
import re
from collections import defaultdict
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings
from storefront.core.errors import StorageError, ValidationError
from storefront.models.product import Product
from storefront.schemas.order import (
    CheckoutRequest,
    CustomerSnapshot,
    DeliveryInfo,
    LineItem,
    OrderSummary,
    PaymentInfo,
)
from storefront.services.pricing import read_pricing_policy

logger = logging.getLogger(__name__)


class CheckoutFailure(str, enum.Enum):
    EMPTY = "empty"
    UNAVAILABLE = "unavailable"
    INVALID_QUANTITY = "invalidQuantity"
    LOW_STOCK = "lowStock"
    REQUIRED = "required"
    INVALID_PHONE = "invalidPhone"
    BELOW_MINIMUM = "belowMinimum"
    TOO_LONG = "tooLong"


FIELD_ERROR_MESSAGES = {
    "name": "Please include your name.",
    "phone": "Please include a contact phone number.",
    "address": "Please include a delivery address.",
    "slot": "Please choose a delivery slot.",
    "payment_method": "Please choose a payment method.",
}
INVALID_PHONE_MESSAGE = "Please provide a valid phone number."
FIELD_LABELS = {
    "name": "Name",
    "phone": "Phone number",
    "address": "Address",
    "slot": "Delivery slot",
    "payment_method": "Payment method",
}

# Upper bounds for the order snapshot columns; longer values are rejected.
FIELD_MAX_LENGTHS = {
    "name": 120,
    "phone": 20,
    "address": 160,
    "slot": 80,
    "payment_method": 40,
}
MAX_QUANTITY_DIGITS = 10

_NON_DIGITS = re.compile(r"\D")


def digits_only(value: str) -> str:
    return _NON_DIGITS.sub("", value)


def _clean(value: str | None) -> str:
    return value.strip() if isinstance(value, str) else ""


def _item_id(entry: Any) -> str | None:
    if not isinstance(entry, dict):
        return None
    value = entry.get("id")
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


def parse_quantity(value: Any) -> int | None:
    """Whole-number quantity from an int, integral float or numeric string; else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (float, str)):
        try:
            number = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
        # ten or more digits is out of range; stop before int() expands the exponent
        if not number.is_finite() or number.adjusted() >= MAX_QUANTITY_DIGITS:
            return None
        if number == number.to_integral_value():
            return int(number)
    return None


def format_amount(amount: Decimal) -> str:
    return f"{amount.normalize():f}"


async def fetch_active_products(db: AsyncSession, product_ids: Iterable[str]) -> dict[str, Any]:
    """One batched read of the active products among ``product_ids``, keyed by id."""
    result = await db.execute(
        select(Product.id, Product.name, Product.price, Product.stock_quantity).where(
            Product.id.in_(list(product_ids)),
            Product.is_active.is_(True),
        )
    )
    return {row.id: row for row in result.all()}


def price_lines(entries: list[Any], products: dict[str, Any], max_quantity: int) -> list[LineItem]:
    lines: list[LineItem] = []
    requested: dict[str, int] = defaultdict(int)
    for entry in entries:
        product_id = _item_id(entry)
        product = products.get(product_id) if product_id else None
        if product is None:
            raise ValidationError(
                f"Item with id '{product_id or ''}' is unavailable right now.",
                reason=CheckoutFailure.UNAVAILABLE,
                field=product_id,
            )

        quantity = parse_quantity(entry.get("quantity"))
        if quantity is None or quantity <= 0 or quantity > max_quantity:
            raise ValidationError(
                f"Invalid quantity for {product.name}.",
                reason=CheckoutFailure.INVALID_QUANTITY,
                field=product_id,
            )

        # Repeated lines for one product draw on the same stock.
        requested[product_id] += quantity
        if product.stock_quantity is not None and requested[product_id] > product.stock_quantity:
            raise ValidationError(
                f"{product.name} is low on stock. Available: {product.stock_quantity}.",
                reason=CheckoutFailure.LOW_STOCK,
                field=product_id,
            )

        unit_price = Decimal(product.price)
        lines.append(
            LineItem(
                product_id=product_id,
                name=product.name,
                quantity=quantity,
                unit_price=unit_price,
                line_total=unit_price * quantity,
            )
        )
    return lines


def format_address_snapshot(*parts: str | None) -> str:
    return ", ".join(part.strip() for part in parts if isinstance(part, str) and part.strip())


def normalize_checkout_fields(
    request: CheckoutRequest, settings: Settings
) -> tuple[CustomerSnapshot, DeliveryInfo, PaymentInfo]:
    customer = request.customer
    name = _clean(customer.name)
    phone = _clean(customer.phone)
    line1 = _clean(customer.address)
    slot = _clean(request.delivery.slot)
    method = _clean(request.payment.method)

    for field, value in (
        ("name", name),
        ("phone", phone),
        ("address", line1),
        ("slot", slot),
        ("payment_method", method),
    ):
        if not value:
            raise ValidationError(FIELD_ERROR_MESSAGES[field], reason=CheckoutFailure.REQUIRED, field=field)
        if field == "phone" and len(digits_only(phone)) < settings.PHONE_MIN_DIGITS:
            raise ValidationError(INVALID_PHONE_MESSAGE, reason=CheckoutFailure.INVALID_PHONE, field=field)
        length = len(digits_only(value)) if field == "phone" else len(value)
        if length > FIELD_MAX_LENGTHS[field]:
            raise ValidationError(
                f"{FIELD_LABELS[field]} must be at most {FIELD_MAX_LENGTHS[field]} characters.",
                reason=CheckoutFailure.TOO_LONG,
                field=field,
            )

    line2 = _clean(customer.address_line2) or None
    area = _clean(customer.area) or None
    city = _clean(customer.city) or settings.DEFAULT_CITY
    state = _clean(customer.state) or settings.DEFAULT_STATE
    postal_code = _clean(customer.postal_code) or settings.DEFAULT_POSTAL_CODE
    landmark = _clean(customer.landmark) or None

    snapshot = CustomerSnapshot(
        name=name,
        phone=digits_only(phone),
        address=format_address_snapshot(line1, line2, area, city, state, postal_code, landmark),
        address_line1=line1,
        address_line2=line2,
        area=area,
        city=city,
        state=state,
        postal_code=postal_code,
        landmark=landmark,
    )
    delivery = DeliveryInfo(slot=slot, instructions=_clean(request.delivery.instructions) or None)
    return snapshot, delivery, PaymentInfo(method=method)


async def validate_order(db: AsyncSession, request: CheckoutRequest, settings: Settings) -> OrderSummary:
    """Validate and price a checkout, returning the summary that will be persisted."""
    entries = list(request.items)
    if not entries:
        raise ValidationError(
            "Please include at least one item in your order.", reason=CheckoutFailure.EMPTY, field="items"
        )
    wanted = {product_id for product_id in map(_item_id, entries) if product_id}
    if not wanted:
        raise ValidationError(
            "Please include at least one valid item in your order.", reason=CheckoutFailure.EMPTY, field="items"
        )

    try:
        products = await fetch_active_products(db, wanted)
    except SQLAlchemyError:
        logger.exception("Failed to load products for checkout")
        raise StorageError("Unable to load products right now.")

    items = price_lines(entries, products, settings.MAX_ITEM_QUANTITY)
    total = sum((item.line_total for item in items), Decimal("0"))

    customer, delivery, payment = normalize_checkout_fields(request, settings)

    policy = await read_pricing_policy(db, settings)
    if total < policy.minimum_order_amount:
        raise ValidationError(
            f"Orders must be at least {settings.CURRENCY_SYMBOL}{format_amount(policy.minimum_order_amount)}.",
            reason=CheckoutFailure.BELOW_MINIMUM,
            field="total",
        )

    return OrderSummary(
        customer=customer,
        items=items,
        total=total,
        currency=settings.CURRENCY,
        delivery=delivery,
        payment=payment,
        policy=policy,
    )
