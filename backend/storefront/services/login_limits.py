"""Login rate limiting keyed by client address.

Failures inside a window are counted per client; reaching the limit blocks further
logins for the block period. The counters live in the ``login_attempts`` table so
every worker sees the same state. A storage fault here is logged and the login
proceeds unthrottled.
"""

import logging
import math
import time

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings
from storefront.core.errors import RateLimited
from storefront.models.login_attempt import LoginAttempt

logger = logging.getLogger(__name__)


def login_key(client_ip: str | None) -> str | None:
    return f"login:{client_ip}" if client_ip else None


def _retry_after(blocked_until: float, now: float) -> int:
    return max(1, math.ceil(blocked_until - now))


async def _read_attempt(db: AsyncSession, key: str) -> LoginAttempt | None:
    result = await db.execute(
        select(LoginAttempt).where(LoginAttempt.key == key).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def ensure_login_allowed(db: AsyncSession, client_ip: str | None, now: float | None = None) -> None:
    """Raise RateLimited while the client is blocked."""
    key = login_key(client_ip)
    if key is None:
        return
    now = time.time() if now is None else now
    try:
        record = await _read_attempt(db, key)
    except SQLAlchemyError:
        logger.warning("Failed to read login attempts for %s", key, exc_info=True)
        await db.rollback()
        return
    if record is not None and record.blocked_until and now < record.blocked_until:
        raise RateLimited(retry_after=_retry_after(record.blocked_until, now))


async def record_login_failure(
    db: AsyncSession, client_ip: str | None, settings: Settings, now: float | None = None
) -> int | None:
    """Count a failed login; returns the seconds to wait when the client is now blocked."""
    key = login_key(client_ip)
    if key is None:
        return None
    now = time.time() if now is None else now
    try:
        record = await _read_attempt(db, key)
        if record is None:
            record = LoginAttempt(key=key, count=0, reset_at=now + settings.LOGIN_WINDOW_SECONDS)
            db.add(record)
        elif now > record.reset_at and not (record.blocked_until and now < record.blocked_until):
            # window and block both lapsed: start over
            record.count = 0
            record.reset_at = now + settings.LOGIN_WINDOW_SECONDS
            record.blocked_until = None

        record.count += 1
        if record.blocked_until and now >= record.blocked_until:
            record.blocked_until = None
        if record.count >= settings.LOGIN_MAX_ATTEMPTS:
            record.blocked_until = now + settings.LOGIN_BLOCK_SECONDS
        blocked_until = record.blocked_until
        await db.commit()
    except SQLAlchemyError:
        logger.warning("Failed to record login failure for %s", key, exc_info=True)
        await db.rollback()
        return None

    if blocked_until and blocked_until > now:
        logger.info("Login blocked for %s until %.0f", key, blocked_until)
        return _retry_after(blocked_until, now)
    return None


async def clear_login_attempts(db: AsyncSession, client_ip: str | None) -> bool:
    """Drop the failure count; False when the session had to be rolled back."""
    key = login_key(client_ip)
    if key is None:
        return True
    try:
        await db.execute(delete(LoginAttempt).where(LoginAttempt.key == key))
        await db.commit()
    except SQLAlchemyError:
        logger.warning("Failed to clear login attempts for %s", key, exc_info=True)
        await db.rollback()
        return False
    return True
