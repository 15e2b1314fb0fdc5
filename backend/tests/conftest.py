"""
Test Configuration — Fixtures for async DB, test client, and marketplace data.

Uses per-test transactions with SAVEPOINT/rollback so each test gets a
clean database state on a fresh in-memory schema.
"""

import uuid
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from api.deps import get_current_user, get_db
from api.main import app
from core import config as config_module
from core.timeutil import utcnow
from db.session import Base

# Use in-memory SQLite for tests.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CUSTOMER_ID = "00000000-0000-0000-0000-000000000001"
OTHER_CUSTOMER_ID = "00000000-0000-0000-0000-000000000002"
DESIGNER_A_ID = "00000000-0000-0000-0000-00000000000a"
DESIGNER_B_ID = "00000000-0000-0000-0000-00000000000b"

MEASUREMENTS = {
    "chest": 96,
    "waist": 80,
    "hips": 100,
    "height": 175,
    "shoulder": 45,
    "armLength": 62,
    "inseam": 81,
    "neck": 38,
}


@pytest.fixture
async def test_engine():
    """Fresh in-memory database with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    """Create a test session wrapped in a transaction that rolls back after each test."""
    async with test_engine.connect() as conn:
        trans = await conn.begin()
        # Every session transaction (including the app's own commits and
        # rollbacks) becomes a SAVEPOINT inside ``trans``.
        session = AsyncSession(bind=conn, expire_on_commit=False, join_transaction_mode="create_savepoint")

        yield session

        await session.close()
        await trans.rollback()


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Env-driven tests mutate settings; never let them leak into the next test."""
    get_settings = config_module.get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def published(monkeypatch):
    """Capture pushes instead of talking to Redis."""
    sent: list = []

    async def _capture(notifications):
        sent.extend(notifications)
        return len(notifications)

    monkeypatch.setattr("deadlines.monitor.publish_notifications", _capture)
    monkeypatch.setattr("notifications.service.publish_notifications", _capture)
    return sent


@pytest.fixture
def mock_user():
    """Mock authenticated user. Tests switch identity by rewriting ``sub``."""
    return {
        "sub": CUSTOMER_ID,
        "email": "ada@stitchline.test",
        "role": "CUSTOMER",
    }


@pytest.fixture
async def client(test_db, mock_user):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def seeded_db(test_db):
    """Two customers and two designers."""
    from db.models import User

    users = {
        "customer": User(
            user_id=uuid.UUID(CUSTOMER_ID),
            email="ada@stitchline.test",
            full_name="Ada Lovelace",
            role="CUSTOMER",
        ),
        "other_customer": User(
            user_id=uuid.UUID(OTHER_CUSTOMER_ID),
            email="grace@stitchline.test",
            full_name="Grace Hopper",
            role="CUSTOMER",
        ),
        "designer_a": User(
            user_id=uuid.UUID(DESIGNER_A_ID),
            email="atelier-a@stitchline.test",
            full_name="Amara Okafor",
            role="DESIGNER",
            brand_name="Atelier Amara",
            bio="Bridal and eveningwear.",
        ),
        "designer_b": User(
            user_id=uuid.UUID(DESIGNER_B_ID),
            email="atelier-b@stitchline.test",
            full_name="Bruno Costa",
            role="DESIGNER",
            brand_name="Costa Tailoring",
        ),
    }
    test_db.add_all(users.values())
    await test_db.commit()
    return users


@pytest.fixture
def make_request(test_db):
    """Insert an OPEN request directly (creation rules are tested separately)."""
    from db.models import CustomRequest

    async def _make(customer_id=CUSTOMER_ID, *, deadline_days: float | None = 10, now=None, **overrides):
        now = now or utcnow()
        request = CustomRequest(
            customer_id=uuid.UUID(str(customer_id)),
            title=overrides.pop("title", "Linen wedding suit"),
            description=overrides.pop("description", "Three-piece, ivory linen, peak lapels."),
            category=overrides.pop("category", "WEDDING"),
            reference_images=overrides.pop("reference_images", ["https://img.test/suit.jpg"]),
            measurements=overrides.pop("measurements", dict(MEASUREMENTS)),
            deadline=now + timedelta(days=deadline_days) if deadline_days is not None else None,
            status=overrides.pop("status", "OPEN"),
            **overrides,
        )
        test_db.add(request)
        await test_db.commit()
        return request

    return _make


@pytest.fixture
def make_bid(test_db):
    """Insert a bid directly."""
    from db.models import CustomRequestBid

    async def _make(request, designer_id, *, price=450.0, completion_days: float = 4, now=None, **overrides):
        now = now or utcnow()
        bid = CustomRequestBid(
            request_id=request.request_id,
            designer_id=uuid.UUID(str(designer_id)),
            price=price,
            proposed_completion_date=now + timedelta(days=completion_days),
            pitch=overrides.pop("pitch", "Hand-finished seams, two fittings included."),
            portfolio_images=overrides.pop("portfolio_images", []),
            status=overrides.pop("status", "PENDING"),
            can_meet_deadline=overrides.pop("can_meet_deadline", True),
            **overrides,
        )
        test_db.add(bid)
        await test_db.commit()
        return bid

    return _make


@pytest.fixture
def make_order(test_db):
    """Insert an order (with its design and offer) for the deadline monitor."""
    from db.models import Design, Offer, Order

    counter = {"n": 0}

    async def _make(*, deadline, status="CONSTRUCTION", designer_id=DESIGNER_A_ID, customer_id=CUSTOMER_ID, **extra):
        counter["n"] += 1
        design = Design(
            designer_id=uuid.UUID(designer_id),
            title="Custom Order: Linen wedding suit",
            description="Three-piece",
            price=450.0,
            category="WEDDING",
        )
        test_db.add(design)
        await test_db.flush()
        offer = Offer(
            customer_id=uuid.UUID(customer_id),
            designer_id=uuid.UUID(designer_id),
            design_id=design.design_id,
            status="ACCEPTED",
            customer_price=450.0,
            final_price=450.0,
            deadline=deadline,
        )
        test_db.add(offer)
        await test_db.flush()
        order = Order(
            order_number=extra.pop("order_number", f"ORD-{counter['n']:04d}"),
            offer_id=offer.offer_id,
            customer_id=uuid.UUID(customer_id),
            designer_id=uuid.UUID(designer_id),
            design_id=design.design_id,
            status=status,
            final_price=450.0,
            deadline=deadline,
            **extra,
        )
        test_db.add(order)
        await test_db.commit()
        return order

    return _make
