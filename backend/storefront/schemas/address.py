"""Saved address schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from storefront.schemas.fields import LooseText


class AddressIn(BaseModel):
    label: LooseText = None
    contact_name: LooseText = None
    phone: LooseText = None
    line1: LooseText = None
    line2: LooseText = None
    area: LooseText = None
    city: LooseText = None
    state: LooseText = None
    postal_code: LooseText = None
    landmark: LooseText = None
    is_default: bool = False


class AddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    label: str | None
    contact_name: str | None
    phone: str | None
    line1: str
    line2: str | None
    area: str | None
    city: str | None
    state: str | None
    postal_code: str | None
    landmark: str | None
    is_default: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AddressListResponse(BaseModel):
    addresses: list[AddressResponse]
