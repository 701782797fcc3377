import os

# Settings are read at import time; point them at throwaway resources first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ["POS_MERCHANT_ID"] = ""
os.environ["POS_API_TOKEN"] = ""
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models.db_models import Admin, Product, User, new_id
from app.services import realtime_service
from app.services.auth_service import create_token, hash_password
from app.services.auto_migration import run_auto_migration
from app.services.db_service import get_db
from app.services.pos_client import PosClient


@pytest.fixture(autouse=True)
def silence_sockets(mocker):
    """Broadcasts are fire-and-forget; record them instead of emitting."""
    return mocker.patch.object(realtime_service.sio, "emit", new_callable=mocker.AsyncMock)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await run_auto_migration(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def pos():
    """A configured POS client pointed at the sandbox host (mock it with respx)."""
    return PosClient(merchant_id="M1", api_token="token", env="sandbox", page_size=100)


@pytest.fixture
def make_product(session):
    async def _make(**fields):
        data = {
            "id": new_id(),
            "product_id": fields.get("product_id") or f"SKU-{new_id()[:8]}",
            "name": "Test Product",
            "description": "A product used in tests",
            "categories": [],
            "variants": [],
            "images": [],
            "other_flavours": [],
            "price": 10.0,
            "stock_count": 10,
            "in_stock": True,
            "show_on_pos": True,
        }
        data.update(fields)
        product = Product(**data)
        session.add(product)
        await session.commit()
        return product
    return _make


@pytest.fixture
async def user(session):
    user = User(
        name="Jane Doe",
        email="jane@example.com",
        password=hash_password("secret123"),
        address={},
        notifications_waitlist={},
        notifications=[],
    )
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def admin(session):
    admin = Admin(email="admin@example.com", password=hash_password("admin-pass"))
    session.add(admin)
    await session.commit()
    return admin


@pytest.fixture
def user_headers(user):
    return {"Authorization": f"Bearer {create_token(user.id)}"}


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {create_token(admin.id, role='admin')}"}


@pytest.fixture
async def client(session_factory):
    from app.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
