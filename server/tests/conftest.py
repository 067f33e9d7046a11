"""Test configuration and fixtures."""

import json
import os
from datetime import date, datetime, timedelta
from decimal import Decimal

# Settings are read at import time; point them at test values first
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"
os.environ["INVENTORY_HORIZON_DAYS"] = "30"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["BEARER_TOKEN_SECRET"] = "test-bearer-token-secret-with-enough-length"

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from hotel_booking.core.config import Settings, settings  # noqa: E402
from hotel_booking.core.database import Base, get_db  # noqa: E402
from hotel_booking.core.dependencies import HOTEL_MANAGER_ROLE, CurrentUser  # noqa: E402
from hotel_booking.core.exceptions import GatewayFailureError, ValidationError  # noqa: E402
from hotel_booking.models import *  # noqa: E402,F403 - Import all models
from hotel_booking.schemas.hotel import CreateHotelRequest, CreateRoomRequest  # noqa: E402
from hotel_booking.services.booking_service import BookingLifecycleManager  # noqa: E402
from hotel_booking.services.checkout import CheckoutSession  # noqa: E402
from hotel_booking.services.hotel_service import HotelService  # noqa: E402
from hotel_booking.services.inventory_ledger import LockArena  # noqa: E402
from hotel_booking.services.pricing import PricingPipeline  # noqa: E402

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# First day of inventory for service-level tests; far from the real calendar
START = date(2030, 3, 1)
T0 = datetime(2030, 2, 20, 12, 0, 0)


class FrozenClock:
    """Clock returning a fixed instant until advanced."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeCheckoutGateway:
    """In-memory checkout gateway recording every call."""

    def __init__(self):
        self.sessions: dict[str, str] = {}
        self.refunds: list[str] = []
        self.calls: list[str] = []
        self.fail_create = False
        self.fail_refund = False
        # Called while a session is being created, before it is returned
        self.on_create = None

    async def create_session(self, booking, success_url, failure_url, *, description="", customer_email=None):
        self.calls.append("create_session")
        if self.fail_create:
            raise GatewayFailureError("create_session", "gateway unavailable")
        if self.on_create is not None:
            self.on_create()
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions[session_id] = str(booking.id)
        self.last_description = description
        self.last_success_url = success_url
        return CheckoutSession(id=session_id, url=f"https://checkout.test/{session_id}")

    async def retrieve_session(self, session_id):
        self.calls.append("retrieve_session")
        return f"pi_{session_id}"

    async def session_booking_ref(self, session_id):
        self.calls.append("session_booking_ref")
        return self.sessions.get(session_id)

    async def refund(self, payment_intent_ref):
        self.calls.append("refund")
        if self.fail_refund:
            raise GatewayFailureError("refund", "card network timeout")
        self.refunds.append(payment_intent_ref)
        return f"re_{len(self.refunds)}"

    def verify_webhook(self, payload, signature):
        if signature != "t=1,v1=valid":
            raise ValidationError("Invalid webhook signature")
        event = json.loads(payload)
        if event["type"] != "checkout.session.completed":
            return None
        return event["data"]["object"]["id"]


def webhook_payload(session_id: str, event_type: str = "checkout.session.completed") -> bytes:
    return json.dumps({"type": event_type, "data": {"object": {"id": session_id}}}).encode()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def ledger_locks():
    return LockArena()


@pytest.fixture
def booking_locks():
    return LockArena()


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def pricing():
    """Default pricing with "today" pinned to the first inventory day."""
    return PricingPipeline(clock=lambda: START)


@pytest.fixture
def gateway():
    return FakeCheckoutGateway()


@pytest.fixture
def owner():
    return CurrentUser(id="owner-1", email="owner@example.com", name="Owner", roles=(HOTEL_MANAGER_ROLE,))


@pytest.fixture
def guest_user():
    return CurrentUser(id="user-1", email="guest@example.com", name="Guest")


@pytest.fixture
def other_user():
    return CurrentUser(id="user-2", email="other@example.com", name="Other")


@pytest.fixture
def hotel_service(test_session, pricing, ledger_locks):
    return HotelService(test_session, pricing=pricing, arena=ledger_locks, today=lambda: START)


@pytest_asyncio.fixture
async def active_room(hotel_service, owner):
    """An active hotel in Goa with five units of one room type at 1000.00."""
    hotel = await hotel_service.create_hotel(owner, CreateHotelRequest(name="Sea View", city="Goa"))
    room = await hotel_service.create_room(
        owner,
        CreateRoomRequest(
            hotel_id=str(hotel.id),
            type="Deluxe",
            base_price=Decimal("1000.00"),
            total_count=5,
            capacity=2,
        )
    )
    await hotel_service.activate_hotel(owner, hotel.id)
    return hotel, room


@pytest.fixture
def lifecycle(test_session, gateway, pricing, ledger_locks, booking_locks, clock):
    """BookingLifecycleManager wired to the test session and fakes."""
    return BookingLifecycleManager(
        test_session,
        gateway=gateway,
        pricing=pricing,
        arena=ledger_locks,
        booking_locks=booking_locks,
        clock=clock,
    )


@pytest.fixture
def make_token():
    """Build HS256 bearer tokens signed with the configured secret."""

    def _make_token(user_id: str, roles=(), **claims) -> dict:
        payload = {"sub": user_id, "roles": list(roles), **claims}
        token = jwt.encode(payload, settings.bearer_token_secret, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return _make_token


@pytest_asyncio.fixture(scope="function")
async def test_app(session_factory, gateway):
    """Create a test FastAPI application backed by the test database."""
    from hotel_booking.main import create_app
    from hotel_booking.workers.manager import WorkerManager

    app = create_app(
        checkout_gateway=gateway,
        pricing_pipeline=PricingPipeline(),
        worker_manager=WorkerManager(Settings(expiry_sweep_enabled=False)),
    )

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
