"""Order validation: server-side pricing, quantity bounds, stock and field checks."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import checkout_payload
from storefront.core.errors import StorageError, ValidationError
from storefront.models.admin_config import AdminConfig
from storefront.schemas.order import CheckoutRequest
from storefront.services.checkout import (
    CheckoutFailure,
    format_address_snapshot,
    parse_quantity,
    validate_order,
)
from storefront.services.pricing import read_pricing_policy


def request_for(items=None, **customer) -> CheckoutRequest:
    return CheckoutRequest.model_validate(checkout_payload(items, **customer))


@pytest.mark.parametrize(
    "raw, expected",
    [
        (3, 3), (2.0, 2), ("4", 4), (" 5 ", 5), ("2e1", 20), (2.5, None), ("abc", None), (True, None),
        (None, None), ([1], None), ("1e10", None), ("1e100000000", None), ("-1e100000000", None), (1e300, None),
    ],
)
def test_parse_quantity(raw, expected):
    assert parse_quantity(raw) == expected


def test_address_snapshot_skips_blanks():
    assert format_address_snapshot("12 Market Road", None, " ", "Ieeja", "Telangana", "509127") == (
        "12 Market Road, Ieeja, Telangana, 509127"
    )


# ── Pricing ────────────────────────────────────────

@pytest.mark.asyncio
async def test_prices_come_from_catalog(db, settings, seeded):
    request = request_for([
        {"id": "tomato", "quantity": 2, "price": 0.01, "name": "Free tomato"},
        {"id": "rice", "quantity": "3"},
    ])
    summary = await validate_order(db, request, settings)

    assert [item.product_id for item in summary.items] == ["tomato", "rice"]
    assert summary.items[0].name == "Tomato"
    assert summary.items[0].unit_price == Decimal("150.00")
    assert summary.items[0].line_total == Decimal("300.00")
    assert summary.items[1].line_total == Decimal("180.00")
    assert summary.total == Decimal("480.00")
    assert summary.currency == "INR"
    assert summary.policy.minimum_order_amount == Decimal("100")


@pytest.mark.asyncio
async def test_customer_snapshot_is_normalized(db, settings, seeded):
    request = request_for(name="  Asha  ", phone="+91 98765-43210", landmark="Near temple")
    summary = await validate_order(db, request, settings)
    customer = summary.customer
    assert customer.name == "Asha"
    assert customer.phone == "919876543210"
    assert customer.city == "Ieeja"
    assert customer.address == "12 Market Road, Ieeja, Telangana, 509127, Near temple"
    assert summary.delivery.slot == "Today 6-8 PM"
    assert summary.payment.method == "cod"


# ── Rejections ─────────────────────────────────────

@pytest.mark.asyncio
@pytest.mark.parametrize("items", [[], "not-a-list", [{"quantity": 2}], [{"id": "  "}]])
async def test_empty_orders_rejected(db, settings, seeded, items):
    with pytest.raises(ValidationError) as exc:
        await validate_order(db, CheckoutRequest.model_validate({**checkout_payload(), "items": items}), settings)
    assert exc.value.reason == CheckoutFailure.EMPTY


@pytest.mark.asyncio
@pytest.mark.parametrize("product_id", ["retired", "missing"])
async def test_inactive_or_unknown_product_unavailable(db, settings, seeded, product_id):
    request = request_for([{"id": "tomato", "quantity": 1}, {"id": product_id, "quantity": 1}])
    with pytest.raises(ValidationError) as exc:
        await validate_order(db, request, settings)
    assert exc.value.reason == CheckoutFailure.UNAVAILABLE
    assert exc.value.message == f"Item with id '{product_id}' is unavailable right now."
    assert exc.value.field == product_id


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -1, 21, 2.5, "two", None, True, "1e100000000", "9" * 40])
async def test_invalid_quantities(db, settings, seeded, quantity):
    with pytest.raises(ValidationError) as exc:
        await validate_order(db, request_for([{"id": "rice", "quantity": quantity}]), settings)
    assert exc.value.reason == CheckoutFailure.INVALID_QUANTITY
    assert exc.value.message == "Invalid quantity for Rice."


@pytest.mark.asyncio
async def test_max_quantity_is_allowed_for_untracked_stock(db, settings, seeded):
    summary = await validate_order(db, request_for([{"id": "rice", "quantity": 20}]), settings)
    assert summary.total == Decimal("1200.00")


@pytest.mark.asyncio
async def test_low_stock(db, settings, seeded):
    with pytest.raises(ValidationError) as exc:
        await validate_order(db, request_for([{"id": "onion", "quantity": 5}]), settings)
    assert exc.value.reason == CheckoutFailure.LOW_STOCK
    assert exc.value.message == "Onion is low on stock. Available: 3."


@pytest.mark.asyncio
async def test_repeated_lines_share_stock(db, settings, seeded):
    request = request_for([{"id": "onion", "quantity": 2}, {"id": "onion", "quantity": 2}])
    with pytest.raises(ValidationError) as exc:
        await validate_order(db, request, settings)
    assert exc.value.reason == CheckoutFailure.LOW_STOCK


@pytest.mark.asyncio
async def test_item_errors_come_before_field_errors(db, settings, seeded):
    request = request_for([{"id": "missing", "quantity": 1}], name="", phone="")
    with pytest.raises(ValidationError) as exc:
        await validate_order(db, request, settings)
    assert exc.value.reason == CheckoutFailure.UNAVAILABLE


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides, field, reason",
    [
        ({"name": "", "phone": ""}, "name", CheckoutFailure.REQUIRED),
        ({"phone": None}, "phone", CheckoutFailure.REQUIRED),
        ({"phone": "12-34-5", "address": ""}, "phone", CheckoutFailure.INVALID_PHONE),
        ({"address": "   "}, "address", CheckoutFailure.REQUIRED),
    ],
)
async def test_field_checks_in_order(db, settings, seeded, overrides, field, reason):
    with pytest.raises(ValidationError) as exc:
        await validate_order(db, request_for(**overrides), settings)
    assert exc.value.field == field
    assert exc.value.reason == reason


@pytest.mark.asyncio
async def test_slot_and_payment_required(db, settings, seeded):
    payload = checkout_payload()
    payload["delivery"] = {}
    payload["payment"] = {"method": 5}
    with pytest.raises(ValidationError) as exc:
        await validate_order(db, CheckoutRequest.model_validate(payload), settings)
    assert exc.value.field == "slot"

    payload["delivery"] = {"slot": "Tomorrow"}
    with pytest.raises(ValidationError) as exc:
        await validate_order(db, CheckoutRequest.model_validate(payload), settings)
    assert exc.value.field == "payment_method"


@pytest.mark.asyncio
async def test_minimum_order_amount(db, settings, seeded):
    with pytest.raises(ValidationError) as exc:
        await validate_order(db, request_for([{"id": "onion", "quantity": 2}]), settings)
    assert exc.value.reason == CheckoutFailure.BELOW_MINIMUM
    assert exc.value.message == "Orders must be at least ₹100."


# ── Pricing policy ─────────────────────────────────

@pytest.mark.asyncio
async def test_admin_config_overrides_policy(db, settings, seeded):
    db.add_all([
        AdminConfig(key="minimumOrderAmount", value="500"),
        AdminConfig(key="deliveryFeeBelowThreshold", value="not-a-number"),
    ])
    await db.commit()

    policy = await read_pricing_policy(db, settings)
    assert policy.minimum_order_amount == Decimal("500")
    assert policy.delivery_fee_below_threshold == Decimal("15")

    with pytest.raises(ValidationError) as exc:
        await validate_order(db, request_for(), settings)
    assert exc.value.message == "Orders must be at least ₹500."


@pytest.mark.asyncio
async def test_policy_falls_back_on_storage_fault(settings):
    broken = AsyncMock()
    broken.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))
    policy = await read_pricing_policy(broken, settings)
    assert policy.minimum_order_amount == Decimal("100")
    assert policy.free_delivery_threshold == Decimal("299")
    broken.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_catalog_fault_is_storage_error(settings):
    broken = AsyncMock()
    broken.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))
    with pytest.raises(StorageError):
        await validate_order(broken, request_for(), settings)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "section, key, value, field",
    [
        ("customer", "name", "A" * 121, "name"),
        ("customer", "phone", "9" * 21, "phone"),
        ("customer", "address", "12 Market Road " * 11, "address"),
        ("delivery", "slot", "x" * 81, "slot"),
        ("payment", "method", "x" * 41, "payment_method"),
    ],
)
async def test_oversized_fields_rejected(db, settings, seeded, section, key, value, field):
    payload = checkout_payload()
    payload[section][key] = value
    with pytest.raises(ValidationError) as exc:
        await validate_order(db, CheckoutRequest.model_validate(payload), settings)
    assert exc.value.reason == CheckoutFailure.TOO_LONG
    assert exc.value.field == field


@pytest.mark.asyncio
async def test_phone_length_counts_digits_only(db, settings, seeded):
    summary = await validate_order(db, request_for(phone="+91 (98765) 43210 ext 22"), settings)
    assert summary.customer.phone == "91987654321022"
