"""Saved addresses and checkout address reconciliation.

At most one address per user is the default. Every promotion first clears the flag on
all of the user's addresses in the same batch, so the invariant holds whichever of two
concurrent batches commits last.

This module is the only writer of ``users.primary_address_json``.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Executable

from storefront.core.errors import NotFound, ValidationError
from storefront.db.batch import commit_batch
from storefront.models.address import Address
from storefront.models.user import User
from storefront.schemas.address import AddressIn
from storefront.schemas.order import OrderSummary

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = (
    "label", "contact_name", "phone", "line1", "line2",
    "area", "city", "state", "postal_code", "landmark",
)
MAX_LENGTHS = {
    "label": 60,
    "contact_name": 80,
    "line1": 160,
    "line2": 160,
    "area": 120,
    "city": 80,
    "state": 80,
    "postal_code": 20,
    "landmark": 160,
}
MAX_PHONE_DIGITS = 15

_NON_DIGITS = re.compile(r"\D")


@dataclass
class StagedAddress:
    """Unexecuted writes for a checkout address plus the id the order should link to."""

    address_id: uuid.UUID | None = None
    statements: list[Executable] = field(default_factory=list)


def normalize_text(value: Any, max_length: int = 120) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value[:max_length] if value else None


def normalize_digits(value: Any, max_length: int = 20) -> str | None:
    if not isinstance(value, str):
        return None
    digits = _NON_DIGITS.sub("", value)
    return digits[:max_length] if digits else None


def sanitize_address(data: AddressIn) -> dict[str, Any] | None:
    """Trim and bound every field; None when line 1 is missing."""
    line1 = normalize_text(data.line1, MAX_LENGTHS["line1"])
    if not line1:
        return None
    values = {name: normalize_text(getattr(data, name), limit) for name, limit in MAX_LENGTHS.items()}
    values["line1"] = line1
    values["phone"] = normalize_digits(data.phone, MAX_PHONE_DIGITS)
    return values


def address_values(address: Address) -> dict[str, Any]:
    return {name: getattr(address, name) for name in ADDRESS_FIELDS}


def build_snapshot(address_id: uuid.UUID, values: dict[str, Any]) -> str:
    return json.dumps({"id": str(address_id), **{name: values.get(name) for name in ADDRESS_FIELDS}})


# ── Staging helpers ────────────────────────────────

def _clear_defaults(user_id: uuid.UUID) -> Executable:
    return (
        update(Address)
        .where(Address.user_id == user_id)
        .values(is_default=False)
        .execution_options(synchronize_session=False)
    )


def _write_primary_snapshot(user_id: uuid.UUID, snapshot: str | None) -> Executable:
    return (
        update(User)
        .where(User.id == user_id)
        .values(primary_address_json=snapshot)
        .execution_options(synchronize_session=False)
    )


def stage_new_address(
    user_id: uuid.UUID, address_id: uuid.UUID, values: dict[str, Any], *, make_default: bool
) -> list[Executable]:
    statements: list[Executable] = []
    if make_default:
        statements.append(_clear_defaults(user_id))
    statements.append(
        insert(Address).values(id=address_id, user_id=user_id, is_default=make_default, **values)
    )
    if make_default:
        statements.append(_write_primary_snapshot(user_id, build_snapshot(address_id, values)))
    return statements


def stage_default_promotion(
    user_id: uuid.UUID, address_id: uuid.UUID, values: dict[str, Any]
) -> list[Executable]:
    """Clear every default for the user, set it on ``address_id`` and refresh the snapshot."""
    return [
        _clear_defaults(user_id),
        update(Address)
        .where(Address.id == address_id, Address.user_id == user_id)
        .values(is_default=True)
        .execution_options(synchronize_session=False),
        _write_primary_snapshot(user_id, build_snapshot(address_id, values)),
    ]


# ── Checkout reconciliation ────────────────────────

async def count_addresses(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(select(func.count()).select_from(Address).where(Address.user_id == user_id))
    return result.scalar_one()


async def stage_checkout_address(
    db: AsyncSession, user_id: uuid.UUID, summary: OrderSummary, *, make_default: bool = False
) -> StagedAddress:
    """Reuse or stage the checkout's delivery address without committing anything.

    An address already saved with the same line 1 and phone is reused. Otherwise a new
    one is staged, becoming the default when it is the user's first or when asked to.
    Failures are logged and yield no linked address; they never block the order.
    """
    customer = summary.customer
    line1 = normalize_text(customer.address_line1, MAX_LENGTHS["line1"])
    if not line1:
        return StagedAddress()

    values = {
        "label": None,
        "contact_name": normalize_text(customer.name, MAX_LENGTHS["contact_name"]),
        "phone": normalize_digits(customer.phone, MAX_PHONE_DIGITS),
        "line1": line1,
        "line2": normalize_text(customer.address_line2, MAX_LENGTHS["line2"]),
        "area": normalize_text(customer.area, MAX_LENGTHS["area"]),
        "city": normalize_text(customer.city, MAX_LENGTHS["city"]),
        "state": normalize_text(customer.state, MAX_LENGTHS["state"]),
        "postal_code": normalize_text(customer.postal_code, MAX_LENGTHS["postal_code"]),
        "landmark": normalize_text(
            customer.landmark or summary.delivery.instructions, MAX_LENGTHS["landmark"]
        ),
    }

    try:
        result = await db.execute(
            select(Address)
            .where(
                Address.user_id == user_id,
                Address.line1 == line1,
                func.coalesce(Address.phone, "") == (values["phone"] or ""),
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            statements = []
            if make_default and not existing.is_default:
                statements = stage_default_promotion(user_id, existing.id, address_values(existing))
            return StagedAddress(existing.id, statements)

        is_first = await count_addresses(db, user_id) == 0
        address_id = uuid.uuid4()
        statements = stage_new_address(user_id, address_id, values, make_default=make_default or is_first)
        return StagedAddress(address_id, statements)
    except SQLAlchemyError:
        logger.exception("Failed to stage checkout address for user %s", user_id)
        await db.rollback()
        return StagedAddress()


# ── Saved address operations ───────────────────────

async def list_addresses(db: AsyncSession, user_id: uuid.UUID) -> list[Address]:
    result = await db.execute(
        select(Address)
        .where(Address.user_id == user_id)
        .order_by(Address.is_default.desc(), Address.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_owned_address(db: AsyncSession, user_id: uuid.UUID, address_id: uuid.UUID) -> Address:
    """Fetch an address of ``user_id``; foreign and missing addresses look the same."""
    result = await db.execute(
        select(Address)
        .where(Address.id == address_id, Address.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    address = result.scalar_one_or_none()
    if address is None:
        raise NotFound("Address not found.")
    return address


def _require_values(data: AddressIn) -> dict[str, Any]:
    values = sanitize_address(data)
    if values is None:
        raise ValidationError("Line 1 is required for the address.", reason="required", field="line1")
    return values


async def create_address(db: AsyncSession, user_id: uuid.UUID, data: AddressIn) -> Address:
    values = _require_values(data)
    make_default = data.is_default or await count_addresses(db, user_id) == 0
    address_id = uuid.uuid4()
    await commit_batch(
        db,
        stage_new_address(user_id, address_id, values, make_default=make_default),
        "Unable to save address right now.",
    )
    return await get_owned_address(db, user_id, address_id)


async def update_address(
    db: AsyncSession, user_id: uuid.UUID, address_id: uuid.UUID, data: AddressIn
) -> Address:
    existing = await get_owned_address(db, user_id, address_id)
    values = _require_values(data)
    statements: list[Executable] = [
        update(Address)
        .where(Address.id == address_id, Address.user_id == user_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    ]
    if data.is_default:
        statements += stage_default_promotion(user_id, address_id, values)
    elif existing.is_default:
        statements.append(_write_primary_snapshot(user_id, build_snapshot(address_id, values)))
    await commit_batch(db, statements, "Unable to update address right now.")
    return await get_owned_address(db, user_id, address_id)


async def set_default_address(db: AsyncSession, user_id: uuid.UUID, address_id: uuid.UUID) -> None:
    existing = await get_owned_address(db, user_id, address_id)
    await commit_batch(
        db,
        stage_default_promotion(user_id, address_id, address_values(existing)),
        "Unable to set default address right now.",
    )


async def delete_address(db: AsyncSession, user_id: uuid.UUID, address_id: uuid.UUID) -> None:
    """Delete an address; a deleted default hands over to the most recent remaining one."""
    existing = await get_owned_address(db, user_id, address_id)
    statements: list[Executable] = [
        delete(Address)
        .where(Address.id == address_id, Address.user_id == user_id)
        .execution_options(synchronize_session=False)
    ]
    if existing.is_default:
        result = await db.execute(
            select(Address)
            .where(Address.user_id == user_id, Address.id != address_id)
            .order_by(Address.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        fallback = result.scalar_one_or_none()
        if fallback is not None:
            statements += stage_default_promotion(user_id, fallback.id, address_values(fallback))
        else:
            statements.append(_write_primary_snapshot(user_id, None))
    await commit_batch(db, statements, "Unable to delete address right now.")
