"""Auth request/response schemas."""

import json
import logging
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from storefront.models.user import UserRole, UserStatus

logger = logging.getLogger(__name__)


# ── Register / Login ───────────────────────────────
class RegisterRequest(BaseModel):
    phone: str
    password: str
    display_name: str | None = None


class LoginRequest(BaseModel):
    phone: str
    password: str


class ProfileUpdate(BaseModel):
    display_name: str | None = None
    full_name: str | None = None


# ── Responses ──────────────────────────────────────
class PublicUser(BaseModel):
    id: UUID
    phone: str
    role: UserRole
    status: UserStatus
    display_name: str | None = None
    full_name: str | None = None
    primary_address: dict | None = None
    created_at: datetime | None = None

    @classmethod
    def from_user(cls, user) -> "PublicUser":
        return cls(
            id=user.id,
            phone=user.phone,
            role=user.role,
            status=user.status,
            display_name=user.display_name,
            full_name=user.full_name or user.display_name,
            primary_address=_parse_snapshot(user.primary_address_json),
            created_at=user.created_at,
        )


def _parse_snapshot(value: str | None) -> dict | None:
    if not value:
        return None
    try:
        parsed = json.loads(value)
    except ValueError:
        logger.error("Failed to parse primary address snapshot")
        return None
    return parsed if isinstance(parsed, dict) else None


class SessionResponse(BaseModel):
    user: PublicUser
    access_token: str
    token_type: str = "bearer"


class MessageResponse(BaseModel):
    message: str


# ── Principal ──────────────────────────────────────
class Principal(BaseModel):
    """Authenticated identity resolved from a bearer token."""

    subject_id: UUID
    role: UserRole

    @property
    def is_privileged(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.RIDER)
