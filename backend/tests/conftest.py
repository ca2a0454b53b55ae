"""
Centralized Test Configuration.
"""

import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, get_session_factory, Base
from backend.app.core.jwt import create_user_token
from backend.app.domain.booking.booking_engine import BookingEngine
from backend.app.domain.booking.ledger import CreditLedger
from backend.app.domain.booking.slot_store import SlotStore
from backend.app.models.booking_enums import LedgerEntryKind
from backend.app.models.enums import UserRole
from backend.app.models.user import User
import backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

SLOT_START = datetime(2030, 1, 7, 10, 0)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def setex(self, key, ttl, value):
        return await self.set(key, value, ex=ttl)

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()

@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session."""

    # Patch the global redis client used by token revocation
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    def override_get_session_factory():
        return TestingSessionLocal

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = override_get_session_factory
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client

@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session

@pytest.fixture
def session_factory():
    return TestingSessionLocal

@pytest.fixture
def booking_engine():
    """Engine without side effects."""
    return BookingEngine(TestingSessionLocal)


# --- Data helpers ---

async def _create_user(db: AsyncSession, username: str, role: UserRole, is_active: bool = True) -> User:
    user = User(
        email=f"{username}@example.com",
        username=username,
        display_name=username.title(),
        role=role,
        is_active=is_active,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def _auth_headers(user: User) -> dict:
    token = create_user_token(user)
    return {"Authorization": f"Bearer {token}"}


async def _fund(db: AsyncSession, user_id: int, credits: int):
    entry = await CreditLedger.append(
        db, user_id=user_id, kind=LedgerEntryKind.PURCHASE, amount=credits, payment_ref="test"
    )
    await db.commit()
    return entry


async def _make_slot(db: AsyncSession, owner_id: int, price: int = 10, offset_hours: int = 0):
    start = SLOT_START + timedelta(hours=offset_hours)
    slot = await SlotStore.create(
        db, owner_id=owner_id, start_at=start, end_at=start + timedelta(minutes=50), price_credits=price
    )
    await db.commit()
    return slot


@pytest.fixture
async def student(db_session):
    return await _create_user(db_session, "student_a", UserRole.STUDENT)

@pytest.fixture
async def other_student(db_session):
    return await _create_user(db_session, "student_b", UserRole.STUDENT)

@pytest.fixture
async def teacher(db_session):
    return await _create_user(db_session, "teacher_t", UserRole.TEACHER)

@pytest.fixture
async def other_teacher(db_session):
    return await _create_user(db_session, "teacher_u", UserRole.TEACHER)

@pytest.fixture
async def admin(db_session):
    return await _create_user(db_session, "admin_root", UserRole.ADMIN)


@pytest.fixture
def fund(db_session):
    """Credit a user with a PURCHASE entry."""
    async def _do(user_id: int, credits: int):
        return await _fund(db_session, user_id, credits)
    return _do

@pytest.fixture
def make_slot(db_session):
    """Publish an OPEN slot for a teacher."""
    async def _do(owner_id: int, price: int = 10, offset_hours: int = 0):
        return await _make_slot(db_session, owner_id, price=price, offset_hours=offset_hours)
    return _do

@pytest.fixture
def auth_headers():
    return _auth_headers

@pytest.fixture
def create_user(db_session):
    async def _do(username: str, role: UserRole, is_active: bool = True):
        return await _create_user(db_session, username, role, is_active=is_active)
    return _do
