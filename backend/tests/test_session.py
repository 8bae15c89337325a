"""Session validation: token checks, revocation counter, live role and status."""

import time
import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import delete, update
from sqlalchemy.exc import OperationalError

from storefront.core.config import Settings
from storefront.core.deps import authenticate, token_version_matches
from storefront.core.errors import (
    AuthFailure,
    ConfigError,
    Forbidden,
    StorageError,
    TokenFailure,
    Unauthenticated,
)
from storefront.core.security import create_refresh_token, sign_token
from storefront.models.user import User, UserRole, UserStatus
from storefront.services.accounts import revoke_sessions


def forged(settings, user_id, **claims) -> str:
    base = {"sub": str(user_id), "type": "access"}
    return sign_token({**base, **claims}, settings.AUTH_SECRET, 60)


# ── Version matching ───────────────────────────────

@pytest.mark.parametrize(
    "claims, stored, expected",
    [
        ({"token_version": 1}, 1, True),
        ({"token_version": 1}, None, True),
        ({"token_version": 2}, 2, True),
        ({"token_version": 1}, 2, False),
        ({}, 1, True),
        ({}, None, True),
        ({}, 2, False),
        ({"token_version": "1"}, 1, False),
        ({"token_version": True}, 1, False),
    ],
)
def test_token_version_matches(claims, stored, expected):
    assert token_version_matches(claims, stored) is expected


# ── authenticate ───────────────────────────────────

@pytest.mark.asyncio
async def test_valid_token_resolves_principal(db, settings, seeded):
    principal = await authenticate(db, seeded.customer.token, settings)
    assert principal.subject_id == seeded.customer.id
    assert principal.role == UserRole.CUSTOMER


@pytest.mark.asyncio
async def test_missing_token(db, settings, seeded):
    with pytest.raises(Unauthenticated) as exc:
        await authenticate(db, None, settings)
    assert exc.value.reason == AuthFailure.MISSING


@pytest.mark.asyncio
async def test_missing_secret_is_config_error(db, seeded):
    with pytest.raises(ConfigError):
        await authenticate(db, seeded.customer.token, Settings(_env_file=None, AUTH_SECRET=None))


@pytest.mark.asyncio
async def test_expired_token_carries_detail(db, settings, seeded):
    token = sign_token(
        {"sub": str(seeded.customer.id), "type": "access", "token_version": 1},
        settings.AUTH_SECRET,
        60,
        now=int(time.time()) - 120,
    )
    with pytest.raises(Unauthenticated) as exc:
        await authenticate(db, token, settings)
    assert exc.value.reason == AuthFailure.INVALID_OR_EXPIRED
    assert exc.value.token_failure == TokenFailure.EXPIRED


@pytest.mark.asyncio
async def test_refresh_token_is_not_an_access_token(db, settings, seeded):
    user = await db.get(User, seeded.customer.id)
    with pytest.raises(Unauthenticated) as exc:
        await authenticate(db, create_refresh_token(user, settings), settings)
    assert exc.value.reason == AuthFailure.INVALID_OR_EXPIRED


@pytest.mark.asyncio
async def test_unknown_subject_is_account_gone(db, settings, seeded):
    for subject in (uuid.uuid4(), "not-a-uuid"):
        with pytest.raises(Unauthenticated) as exc:
            await authenticate(db, forged(settings, subject, token_version=1), settings)
        assert exc.value.reason == AuthFailure.ACCOUNT_GONE


@pytest.mark.asyncio
async def test_deleted_account_is_gone(db, settings, seeded):
    await db.execute(delete(User).where(User.id == seeded.other.id))
    await db.commit()
    with pytest.raises(Unauthenticated) as exc:
        await authenticate(db, seeded.other.token, settings)
    assert exc.value.reason == AuthFailure.ACCOUNT_GONE


@pytest.mark.asyncio
async def test_blocked_account_is_suspended(db, settings, seeded):
    await db.execute(update(User).where(User.id == seeded.customer.id).values(status=UserStatus.BLOCKED))
    await db.commit()
    with pytest.raises(Forbidden) as exc:
        await authenticate(db, seeded.customer.token, settings)
    assert exc.value.reason == AuthFailure.SUSPENDED


@pytest.mark.asyncio
async def test_role_comes_from_storage_not_token(db, settings, seeded):
    # signed with the real secret but claiming admin
    token = forged(settings, seeded.customer.id, role="admin", token_version=1)
    principal = await authenticate(db, token, settings)
    assert principal.role == UserRole.CUSTOMER
    with pytest.raises(Forbidden) as exc:
        await authenticate(db, token, settings, roles=(UserRole.ADMIN,))
    assert exc.value.reason == AuthFailure.ROLE


@pytest.mark.asyncio
async def test_demoted_admin_loses_access_immediately(db, settings, seeded):
    assert (await authenticate(db, seeded.admin.token, settings, (UserRole.ADMIN,))).role == UserRole.ADMIN
    await db.execute(update(User).where(User.id == seeded.admin.id).values(role=UserRole.CUSTOMER))
    await db.commit()
    with pytest.raises(Forbidden):
        await authenticate(db, seeded.admin.token, settings, (UserRole.ADMIN,))


@pytest.mark.asyncio
async def test_revocation_invalidates_outstanding_tokens(db, settings, seeded):
    await revoke_sessions(db, seeded.customer.id)
    with pytest.raises(Unauthenticated) as exc:
        await authenticate(db, seeded.customer.token, settings)
    assert exc.value.reason == AuthFailure.SESSION_EXPIRED

    fresh = forged(settings, seeded.customer.id, token_version=2)
    assert (await authenticate(db, fresh, settings)).subject_id == seeded.customer.id


@pytest.mark.asyncio
async def test_legacy_token_without_version(db, settings, seeded):
    legacy = forged(settings, seeded.customer.id)
    assert (await authenticate(db, legacy, settings)).subject_id == seeded.customer.id

    await revoke_sessions(db, seeded.customer.id)
    with pytest.raises(Unauthenticated) as exc:
        await authenticate(db, legacy, settings)
    assert exc.value.reason == AuthFailure.SESSION_EXPIRED


@pytest.mark.asyncio
async def test_null_stored_version_reads_as_initial(db, settings, seeded):
    await db.execute(update(User).where(User.id == seeded.customer.id).values(token_version=None))
    await db.commit()
    assert (await authenticate(db, seeded.customer.token, settings)).role == UserRole.CUSTOMER

    await revoke_sessions(db, seeded.customer.id)
    with pytest.raises(Unauthenticated):
        await authenticate(db, seeded.customer.token, settings)
    assert (await authenticate(db, forged(settings, seeded.customer.id, token_version=2), settings))


@pytest.mark.asyncio
async def test_storage_fault_fails_closed(settings, seeded):
    broken = AsyncMock()
    broken.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))
    with pytest.raises(StorageError) as exc:
        await authenticate(broken, seeded.customer.token, settings)
    assert exc.value.reason == AuthFailure.AUTH_CHECK_FAILED
