"""Shared fixtures: in-memory database, seeded accounts and catalog, HTTP client."""

import base64
import hashlib
import json
from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import storefront.models  # noqa: F401  (registers every table on Base.metadata)
from storefront.core.config import Settings, get_settings
from storefront.core.security import create_access_token, hash_password
from storefront.db.base import Base, get_db
from storefront.main import app
from storefront.models.product import Product
from storefront.models.user import User, UserRole

PASSWORD = "correct-horse-42"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite://",
        AUTH_SECRET="test-secret-0123456789abcdef",
        PBKDF2_ITERATIONS=1000,
        REFRESH_COOKIE_SECURE=False,
    )


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    async with async_sessionmaker(engine, expire_on_commit=False)() as session:
        yield session


def _account(user: User, settings: Settings) -> SimpleNamespace:
    # plain values: ORM instances expire on rollback and cannot lazy-load under asyncio
    return SimpleNamespace(
        id=user.id,
        phone=user.phone,
        role=user.role,
        token=create_access_token(user, settings),
    )


@pytest_asyncio.fixture
async def seeded(db, settings):
    """Three customers' worth of accounts plus a small catalog.

    tomato: 150.00, 10 in stock; onion: 40.00, 3 in stock;
    rice: 60.00, untracked stock; retired: inactive.
    """
    record = hash_password(PASSWORD, settings.PBKDF2_ITERATIONS)
    customer = User(phone="9876543210", password_hash=record, role=UserRole.CUSTOMER, display_name="Asha")
    other = User(phone="9123456780", password_hash=record, role=UserRole.CUSTOMER, display_name="Ravi")
    admin = User(phone="9000000001", password_hash=record, role=UserRole.ADMIN, display_name="Admin")
    rider = User(phone="9000000002", password_hash=record, role=UserRole.RIDER, display_name="Rider")
    db.add_all([customer, other, admin, rider])
    db.add_all([
        Product(id="tomato", name="Tomato", price=Decimal("150.00"), stock_quantity=10),
        Product(id="onion", name="Onion", price=Decimal("40.00"), stock_quantity=3),
        Product(id="rice", name="Rice", price=Decimal("60.00"), stock_quantity=None),
        Product(id="retired", name="Retired", price=Decimal("50.00"), stock_quantity=5, is_active=False),
    ])
    await db.commit()
    return SimpleNamespace(
        customer=_account(customer, settings),
        other=_account(other, settings),
        admin=_account(admin, settings),
        rider=_account(rider, settings),
    )


@pytest_asyncio.fixture
async def client(db, settings):
    async def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_settings] = lambda: settings
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def checkout_payload(items=None, **customer) -> dict:
    return {
        "items": items if items is not None else [{"id": "tomato", "quantity": 2}],
        "customer": {
            "name": "Asha",
            "phone": "98765 43210",
            "address": "12 Market Road",
            **customer,
        },
        "delivery": {"slot": "Today 6-8 PM"},
        "payment": {"method": "cod"},
    }


def legacy_record(plain: str, iterations: int = 1000, salt: bytes = b"0123456789abcdef") -> str:
    """A password record in the older JSON format: {"v": 1, "i", "s", "h"}."""
    derived = hashlib.pbkdf2_hmac("sha256", plain.encode("utf-8"), salt, iterations)
    return json.dumps({
        "v": 1,
        "i": iterations,
        "s": base64.b64encode(salt).decode(),
        "h": base64.b64encode(derived).decode(),
    })
