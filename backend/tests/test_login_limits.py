"""Login throttling: failure window, block period and reset."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from storefront.core.errors import RateLimited
from storefront.models.login_attempt import LoginAttempt
from storefront.services.login_limits import (
    clear_login_attempts,
    ensure_login_allowed,
    login_key,
    record_login_failure,
)

IP = "203.0.113.9"
T0 = 1_000_000.0


async def fail(db, settings, times, now=T0):
    result = None
    for _ in range(times):
        result = await record_login_failure(db, IP, settings, now=now)
    return result


def test_login_key():
    assert login_key("10.0.0.1") == "login:10.0.0.1"
    assert login_key(None) is None
    assert login_key("") is None


@pytest.mark.asyncio
async def test_block_starts_at_the_limit(db, settings):
    assert await fail(db, settings, settings.LOGIN_MAX_ATTEMPTS - 1) is None
    await ensure_login_allowed(db, IP, now=T0)

    assert await fail(db, settings, 1) == settings.LOGIN_BLOCK_SECONDS
    with pytest.raises(RateLimited) as exc:
        await ensure_login_allowed(db, IP, now=T0 + 60)
    assert exc.value.retry_after == settings.LOGIN_BLOCK_SECONDS - 60


@pytest.mark.asyncio
async def test_block_lapses(db, settings):
    await fail(db, settings, settings.LOGIN_MAX_ATTEMPTS)
    later = T0 + settings.LOGIN_BLOCK_SECONDS + 1
    await ensure_login_allowed(db, IP, now=later)

    # the next failure starts a fresh window
    assert await record_login_failure(db, IP, settings, now=later) is None
    record = (await db.execute(select(LoginAttempt).where(LoginAttempt.key == login_key(IP)))).scalar_one()
    assert record.count == 1
    assert record.blocked_until is None


@pytest.mark.asyncio
async def test_failures_outside_the_window_do_not_add_up(db, settings):
    await fail(db, settings, settings.LOGIN_MAX_ATTEMPTS - 1)
    later = T0 + settings.LOGIN_WINDOW_SECONDS + 1
    assert await fail(db, settings, settings.LOGIN_MAX_ATTEMPTS - 1, now=later) is None
    await ensure_login_allowed(db, IP, now=later)


@pytest.mark.asyncio
async def test_clear_resets_the_count(db, settings):
    await fail(db, settings, settings.LOGIN_MAX_ATTEMPTS - 1)
    assert await clear_login_attempts(db, IP)
    assert await fail(db, settings, settings.LOGIN_MAX_ATTEMPTS - 1) is None


@pytest.mark.asyncio
async def test_unknown_client_is_not_throttled(db, settings):
    for _ in range(settings.LOGIN_MAX_ATTEMPTS + 1):
        assert await record_login_failure(db, None, settings) is None
    await ensure_login_allowed(db, None)


@pytest.mark.asyncio
async def test_storage_fault_lets_login_through(settings):
    broken = AsyncMock()
    broken.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))
    await ensure_login_allowed(broken, IP)
    assert await record_login_failure(broken, IP, settings) is None
    assert await clear_login_attempts(broken, IP) is False
    assert broken.rollback.await_count == 3
