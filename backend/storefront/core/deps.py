"""Dependency injection: bearer-token session validation and role enforcement."""

import logging
import uuid
from collections.abc import Collection

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings, get_settings
from storefront.core.errors import (
    AuthFailure,
    Forbidden,
    StorageError,
    TokenError,
    Unauthenticated,
)
from storefront.core.security import ACCESS_TOKEN_TYPE, require_auth_secret, verify_token
from storefront.db.base import get_db
from storefront.models.user import INITIAL_TOKEN_VERSION, User, UserRole, UserStatus
from storefront.schemas.auth import Principal

logger = logging.getLogger(__name__)

# auto_error=False: a missing header must surface as our own Unauthenticated(missing)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def token_version_matches(claims: dict, stored_version: int | None) -> bool:
    """Tokens minted before revocation counters existed are honoured only until the first bump."""
    db_version = stored_version or INITIAL_TOKEN_VERSION
    if "token_version" not in claims:
        return db_version == INITIAL_TOKEN_VERSION
    token_version = claims["token_version"]
    if isinstance(token_version, bool) or not isinstance(token_version, int):
        return False
    return token_version == db_version


async def authenticate(
    db: AsyncSession,
    token: str | None,
    settings: Settings,
    roles: Collection[UserRole] = (),
) -> Principal:
    """Resolve a bearer token to a Principal, re-checking the account on every call.

    The role used for authorization is the one stored now, not the one embedded in the
    token. Storage faults fail closed.
    """
    secret = require_auth_secret(settings)
    if not token:
        raise Unauthenticated("Missing Authorization header.", reason=AuthFailure.MISSING)

    try:
        claims = verify_token(token, secret)
    except TokenError as exc:
        raise Unauthenticated(
            "Invalid or expired token.",
            reason=AuthFailure.INVALID_OR_EXPIRED,
            token_failure=exc.reason,
        )

    if claims.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
        raise Unauthenticated("Invalid token type.", reason=AuthFailure.INVALID_OR_EXPIRED)

    try:
        user_id = uuid.UUID(str(claims.get("sub")))
    except ValueError:
        raise Unauthenticated("Account no longer exists.", reason=AuthFailure.ACCOUNT_GONE)

    try:
        result = await db.execute(
            select(User.role, User.status, User.token_version).where(User.id == user_id)
        )
        row = result.one_or_none()
    except SQLAlchemyError:
        logger.exception("Auth storage check failed for %s", user_id)
        raise StorageError("Unable to verify session.", reason=AuthFailure.AUTH_CHECK_FAILED)

    if row is None:
        raise Unauthenticated("Account no longer exists.", reason=AuthFailure.ACCOUNT_GONE)
    if row.status != UserStatus.ACTIVE:
        raise Forbidden("Account is suspended.", reason=AuthFailure.SUSPENDED)
    if not token_version_matches(claims, row.token_version):
        raise Unauthenticated("Session expired. Please log in again.", reason=AuthFailure.SESSION_EXPIRED)

    role = UserRole(row.role)
    if roles and role not in roles:
        raise Forbidden("Forbidden", reason=AuthFailure.ROLE)
    return Principal(subject_id=user_id, role=role)


def require_auth(*roles: UserRole):
    """Dependency factory: authenticated principal holding one of ``roles`` (any role if none)."""

    async def checker(
        token: str | None = Depends(oauth2_scheme),
        db: AsyncSession = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ) -> Principal:
        return await authenticate(db, token, settings, roles)

    return checker
