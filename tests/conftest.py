import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["BOT_TOKEN"] = ""
os.environ["JWT_SECRET"] = "test-secret"

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from pydantic import TypeAdapter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import database.models  # noqa: F401
from api.deps import create_access_token
from api.main import create_app
from database.connection import Base, get_session
from database.models.payment import PaymentType
from database.models.user import UserRole
from schemas import AuctionDraft
from services.auction import submit_auction, utcnow
from services.moderation import approve_auction_request
from services.payment import approve_payment_request, submit_payment_request
from services.user import get_or_create_user

_draft_adapter = TypeAdapter(AuctionDraft)


def make_draft(auction_type="english", **overrides):
    """Черновик аукциона, который уже идет и закончится через час"""
    now = utcnow()
    data = {
        "title": "Vintage camera",
        "description": "Fully working film camera",
        "category": "Electronics",
        "auction_type": auction_type,
        "starting_price": 100,
        "bid_increment": 10,
        "images": ["https://cdn.example.com/camera.jpg"],
        "starts_at": now - timedelta(minutes=1),
        "ends_at": now + timedelta(hours=1),
    }
    if auction_type == "reserve":
        data["minimum_price"] = 100
        data["certificates"] = ["https://cdn.example.com/ownership.pdf"]
    data.update(overrides)
    return _draft_adapter.validate_python(data)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def seller(session):
    return await get_or_create_user(session, "seller@example.com", "Sam Seller", phone="+15550001")


@pytest.fixture
async def bidder(session):
    return await get_or_create_user(session, "bidder@example.com", "Bea Bidder", phone="+15550002")


@pytest.fixture
async def other_bidder(session):
    return await get_or_create_user(session, "other@example.com", "Olly Other", phone="+15550003")


@pytest.fixture
async def admin(session):
    return await get_or_create_user(session, "admin@example.com", "Ada Admin", role=UserRole.ADMIN.value)


async def create_live_reserve_auction(session, seller, admin, **overrides):
    """Подать reserve-аукцион и одобрить его"""
    auction_request = await submit_auction(session, seller, make_draft("reserve", **overrides))
    _, auction = await approve_auction_request(session, auction_request.id, admin)
    return auction


async def join_reserve_auction(session, auction, user, admin):
    """Оплатить и подтвердить взнос за участие"""
    payment = await submit_payment_request(
        session,
        user,
        auction.id,
        PaymentType.PARTICIPATION_FEE.value,
        "https://cdn.example.com/fee.png",
    )
    return await approve_payment_request(session, payment.id, admin)


@pytest.fixture
async def client(session_maker):
    app = create_app()

    async def override_get_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
