"""Account endpoints: profile edits and saved delivery addresses."""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.deps import require_auth
from storefront.db.base import get_db
from storefront.schemas.address import AddressIn, AddressListResponse, AddressResponse
from storefront.schemas.auth import MessageResponse, Principal, ProfileUpdate, PublicUser
from storefront.services import accounts, addresses

router = APIRouter(prefix="/account", tags=["account"])


@router.put("/profile", response_model=PublicUser)
async def update_profile(
    body: ProfileUpdate,
    principal: Principal = Depends(require_auth()),
    db: AsyncSession = Depends(get_db),
):
    user = await accounts.update_profile(db, principal.subject_id, body)
    return PublicUser.from_user(user)


# ── Addresses ──────────────────────────────────────

@router.get("/addresses", response_model=AddressListResponse)
async def list_addresses(
    principal: Principal = Depends(require_auth()),
    db: AsyncSession = Depends(get_db),
):
    """Saved addresses, default first, then newest."""
    rows = await addresses.list_addresses(db, principal.subject_id)
    return AddressListResponse(addresses=[AddressResponse.model_validate(a) for a in rows])


@router.post("/addresses", response_model=AddressResponse, status_code=status.HTTP_201_CREATED)
async def create_address(
    body: AddressIn,
    principal: Principal = Depends(require_auth()),
    db: AsyncSession = Depends(get_db),
):
    address = await addresses.create_address(db, principal.subject_id, body)
    return AddressResponse.model_validate(address)


@router.put("/addresses/{address_id}", response_model=AddressResponse)
async def update_address(
    address_id: UUID,
    body: AddressIn,
    principal: Principal = Depends(require_auth()),
    db: AsyncSession = Depends(get_db),
):
    address = await addresses.update_address(db, principal.subject_id, address_id, body)
    return AddressResponse.model_validate(address)


@router.post("/addresses/{address_id}/default", response_model=MessageResponse)
async def set_default_address(
    address_id: UUID,
    principal: Principal = Depends(require_auth()),
    db: AsyncSession = Depends(get_db),
):
    await addresses.set_default_address(db, principal.subject_id, address_id)
    return MessageResponse(message="Default address updated.")


@router.delete("/addresses/{address_id}", response_model=MessageResponse)
async def delete_address(
    address_id: UUID,
    principal: Principal = Depends(require_auth()),
    db: AsyncSession = Depends(get_db),
):
    await addresses.delete_address(db, principal.subject_id, address_id)
    return MessageResponse(message="Address deleted.")
