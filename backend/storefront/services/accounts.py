"""Account lifecycle: registration, login, refresh, revocation and profile edits."""

import logging
import re
import uuid
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings
from storefront.core.deps import token_version_matches
from storefront.core.errors import (
    AuthFailure,
    Conflict,
    NotFound,
    RateLimited,
    StorageError,
    TokenError,
    Unauthenticated,
    ValidationError,
)
from storefront.core.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    hash_password,
    needs_rehash,
    require_auth_secret,
    verify_password,
    verify_token,
)
from storefront.models.user import INITIAL_TOKEN_VERSION, User, UserRole, UserStatus
from storefront.schemas.auth import LoginRequest, ProfileUpdate, RegisterRequest
from storefront.services import login_limits

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^[0-9]{6,15}$")
MIN_PASSWORD_LENGTH = 8
MAX_DISPLAY_NAME = 80
MAX_FULL_NAME = 120


@dataclass
class IssuedSession:
    user: User
    access_token: str
    refresh_token: str


def normalize_phone(value: object) -> str | None:
    """Digits-only phone of 6 to 15 digits, or None."""
    if value is None:
        return None
    digits = re.sub(r"\D", "", str(value))
    return digits if PHONE_PATTERN.match(digits) else None


def _trimmed(value: str | None, max_length: int) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value[:max_length] if value else None


def issue_session(user: User, settings: Settings) -> IssuedSession:
    return IssuedSession(
        user=user,
        access_token=create_access_token(user, settings),
        refresh_token=create_refresh_token(user, settings),
    )


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def register(db: AsyncSession, body: RegisterRequest, settings: Settings) -> IssuedSession:
    require_auth_secret(settings)
    phone = normalize_phone(body.phone)
    if not phone:
        raise ValidationError("Please provide a valid phone number (digits only).", reason="invalidPhone", field="phone")
    if not isinstance(body.password, str) or len(body.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.", reason="weakPassword", field="password"
        )

    display_name = _trimmed(body.display_name, MAX_DISPLAY_NAME)
    try:
        existing = await db.execute(select(User.id).where(User.phone == phone).limit(1))
        if existing.scalar_one_or_none() is not None:
            raise Conflict("An account with this phone number already exists.")

        user = User(
            phone=phone,
            password_hash=hash_password(body.password, settings.PBKDF2_ITERATIONS),
            role=UserRole.CUSTOMER,
            status=UserStatus.ACTIVE,
            token_version=INITIAL_TOKEN_VERSION,
            display_name=display_name or phone,
            full_name=display_name,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
    except IntegrityError:
        await db.rollback()
        raise Conflict("An account with this phone number already exists.")
    except SQLAlchemyError:
        logger.exception("Failed to register user")
        await db.rollback()
        raise StorageError("Unable to create account right now.")

    logger.info("Registered user %s", user.id)
    return issue_session(user, settings)


async def login(
    db: AsyncSession, body: LoginRequest, settings: Settings, client_ip: str | None = None
) -> IssuedSession:
    """Unknown phone, blocked account and wrong password all fail the same way.

    Failures count against ``client_ip``; once it is blocked every attempt gets
    RateLimited until the block lapses, and a successful login clears the count.
    """
    require_auth_secret(settings)
    await login_limits.ensure_login_allowed(db, client_ip)
    invalid = Unauthenticated("Invalid credentials.", reason=AuthFailure.BAD_CREDENTIALS)
    phone = normalize_phone(body.phone)
    if not phone:
        raise ValidationError("Please provide a valid phone number.", reason="invalidPhone", field="phone")

    try:
        result = await db.execute(
            select(User).where(User.phone == phone).limit(1).execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
    except SQLAlchemyError:
        logger.exception("Failed to fetch user for login")
        raise StorageError("Unable to process login right now.")

    if user is None or user.status != UserStatus.ACTIVE or not verify_password(body.password, user.password_hash):
        retry_after = await login_limits.record_login_failure(db, client_ip, settings)
        if retry_after:
            raise RateLimited("Invalid credentials.", retry_after=retry_after)
        raise invalid

    if not await login_limits.clear_login_attempts(db, client_ip):
        await db.refresh(user)

    if needs_rehash(user.password_hash, settings.PBKDF2_ITERATIONS):
        user_id = user.id
        try:
            user.password_hash = hash_password(body.password, settings.PBKDF2_ITERATIONS)
            await db.commit()
            await db.refresh(user)
        except SQLAlchemyError:
            # the old record still verifies, so login goes ahead
            logger.exception("Failed to upgrade password hash for %s", user_id)
            await db.rollback()
            user = await get_user(db, user_id)
            if user is None:
                raise invalid

    return issue_session(user, settings)


async def refresh(db: AsyncSession, refresh_token: str | None, settings: Settings) -> IssuedSession:
    secret = require_auth_secret(settings)
    if not refresh_token:
        raise Unauthenticated("Refresh token missing.", reason=AuthFailure.MISSING)
    try:
        claims = verify_token(refresh_token, secret)
    except TokenError as exc:
        raise Unauthenticated(
            "Invalid or expired refresh token.",
            reason=AuthFailure.INVALID_OR_EXPIRED,
            token_failure=exc.reason,
        )
    if claims.get("type") != REFRESH_TOKEN_TYPE or not claims.get("sub"):
        raise Unauthenticated("Invalid refresh token.", reason=AuthFailure.INVALID_OR_EXPIRED)

    expired = Unauthenticated("Session expired. Please log in again.", reason=AuthFailure.SESSION_EXPIRED)
    try:
        user_id = uuid.UUID(str(claims["sub"]))
    except ValueError:
        raise expired
    try:
        user = await get_user(db, user_id)
    except SQLAlchemyError:
        logger.exception("Failed to refresh session for %s", user_id)
        raise StorageError("Unable to refresh session right now.")

    if user is None or user.status != UserStatus.ACTIVE:
        raise expired
    if not token_version_matches(claims, user.token_version):
        raise expired
    return issue_session(user, settings)


async def revoke_sessions(db: AsyncSession, user_id: uuid.UUID) -> None:
    """Bump the revocation counter; every token issued so far stops working."""
    try:
        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(token_version=func.coalesce(User.token_version, INITIAL_TOKEN_VERSION) + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Failed to revoke sessions for %s", user_id)
        await db.rollback()
        raise StorageError("Unable to revoke sessions right now.")
    logger.info("Revoked all sessions of %s", user_id)


async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await get_user(db, user_id)
    if user is None:
        raise NotFound("Account not found.")
    return user


async def update_profile(db: AsyncSession, user_id: uuid.UUID, body: ProfileUpdate) -> User:
    display_name = _trimmed(body.display_name, MAX_DISPLAY_NAME)
    full_name = _trimmed(body.full_name, MAX_FULL_NAME)
    if not display_name and not full_name:
        raise ValidationError("Please provide a display_name or full_name.", reason="required", field="display_name")

    values = {}
    if display_name:
        values["display_name"] = display_name
    if full_name:
        values["full_name"] = full_name
    try:
        await db.execute(
            update(User).where(User.id == user_id).values(**values).execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Failed to update profile of %s", user_id)
        await db.rollback()
        raise StorageError("Unable to update profile right now.")
    return await get_profile(db, user_id)
