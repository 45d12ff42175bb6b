"""
Pytest fixtures for marketplace tests.

Each test gets its own file-backed SQLite database. Transactions start with
BEGIN IMMEDIATE so that two sessions writing at once serialise the way row
locks do on PostgreSQL: the second waits for the first to commit and then
sees its writes. A session that has touched the database holds that lock
until it commits or rolls back.
"""
import uuid

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from marketplace.config import settings
from marketplace.database import Base, get_db
from marketplace.main import app
from marketplace.models import ProviderProfile, ServiceKind, User

NAIROBI_CBD = (-1.2864, 36.8172)
WESTLANDS = (-1.2676, 36.8108)  # ~2.2 km from the CBD
KAREN = (-1.3197, 36.7073)  # ~12.7 km from the CBD


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'marketplace.db'}", echo=False)

    @event.listens_for(eng.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# --------------------------------------------------------------------------- #
#  Builders                                                                    #
# --------------------------------------------------------------------------- #


async def make_user(db: AsyncSession, name: str = "Customer", push_token: str | None = None) -> User:
    user = User(full_name=name, phone=f"+2547{uuid.uuid4().int % 10**8:08d}", push_token=push_token)
    db.add(user)
    await db.flush()
    return user


async def make_provider(
    db: AsyncSession,
    name: str = "Provider",
    kind: ServiceKind = ServiceKind.RIDE,
    *,
    location: tuple[float, float] | None = NAIROBI_CBD,
    is_online: bool = True,
    is_verified: bool = True,
    categories: list[str] | None = None,
) -> User:
    user = await make_user(db, name)
    db.add(
        ProviderProfile(
            user_id=user.id,
            kind=kind,
            is_verified=is_verified,
            is_online=is_online,
            current_lat=location[0] if location else None,
            current_lng=location[1] if location else None,
            service_categories=categories or [],
        )
    )
    await db.flush()
    return user


def ride_payload(pickup: tuple[float, float] = NAIROBI_CBD, distance_km: float = 6.5) -> dict:
    return {
        "kind": "ride",
        "pickup": {"lat": pickup[0], "lng": pickup[1], "address": "Kenyatta Avenue"},
        "destination": {"lat": WESTLANDS[0], "lng": WESTLANDS[1], "address": "Westlands Mall"},
        "distance_km": distance_km,
    }


def parcel_payload(pickup: tuple[float, float] = NAIROBI_CBD) -> dict:
    return {
        "kind": "parcel",
        "pickup": {"lat": pickup[0], "lng": pickup[1], "address": "Moi Avenue"},
        "delivery": {"lat": KAREN[0], "lng": KAREN[1], "address": "Karen Crossroads"},
        "distance_km": 14.0,
        "package_description": "Documents",
    }


def home_service_payload(category: str = "plumbing") -> dict:
    return {
        "kind": "home_service",
        "service_category": category,
        "job_description": "Kitchen sink is leaking",
        "location": "Kilimani, Argwings Kodhek Rd",
    }


def auth_headers(user_id: uuid.UUID, **claims) -> dict[str, str]:
    token = jwt.encode(
        {"sub": str(user_id), **claims}, settings.SECRET_KEY, algorithm=settings.ALGORITHM
    )
    return {"Authorization": f"Bearer {token}"}
