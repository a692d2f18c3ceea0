import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENV"] = "test"
os.environ["SMTP_HOST"] = ""
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["REQUIRE_VERIFIED_EMAIL"] = "true"

from datetime import date, datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlmodel import SQLModel

import app.models  # noqa: F401 - register tables
from app.core.db import create_engine_for, make_session_maker
from app.core.security import create_access_token, hash_password
from app.models.counselor import CounselorProfile
from app.models.slot import Slot
from app.models.user import Identity, User, UserRole
from app.services.auth_service import user_to_identity
from app.services.availability_service import publish
from app.services.booking_service import book_slot, start_session
from app.services.payment_gateway import compute_signature, signature_matches
from app.services.payment_service import create_order, verify_payment
from app.services.session_rules import utc_naive_now

COUNSELOR_LINK = "https://meet.example.com/room-ab"


class FakeGateway:
    key_id = "rzp_test_key"

    def __init__(self, secret: str = "rzp_test_secret") -> None:
        self.secret = secret
        self.orders: list[tuple[str, int, str, str]] = []

    async def create_order(self, amount: int, currency: str, receipt: str) -> str:
        order_id = f"order_{len(self.orders) + 1}"
        self.orders.append((order_id, amount, currency, receipt))
        return order_id

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return signature_matches(self.secret, order_id, payment_id, signature)

    def sign(self, order_id: str, payment_id: str) -> str:
        return compute_signature(self.secret, order_id, payment_id)


class RecordingNotifier:
    def __init__(self, fail_for: set[int] | None = None) -> None:
        self.sent: list[tuple[int, str, str]] = []
        self.fail_for = fail_for or set()

    async def notify(self, user_id: int, title: str, body: str) -> None:
        if user_id in self.fail_for:
            raise RuntimeError("push failed")
        self.sent.append((user_id, title, body))


class RecordingScheduler:
    def __init__(self, fail: bool = False) -> None:
        self.calls: list[tuple[datetime, dict]] = []
        self.fail = fail

    async def schedule_at(self, fire_at: datetime, payload: dict) -> str:
        if self.fail:
            raise RuntimeError("broker unavailable")
        self.calls.append((fire_at, payload))
        return f"task-{len(self.calls)}"


@pytest.fixture
async def engine(tmp_path):
    # File-backed so every AsyncSession gets its own connection
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", connect_args={"timeout": 30})
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def future_day() -> date:
    return utc_naive_now().date() + timedelta(days=3)


async def create_user(
    session_maker,
    email: str,
    role: str = UserRole.STUDENT,
    username: str | None = None,
    verified: bool = True,
) -> User:
    async with session_maker() as session:
        user = User(
            email=email,
            username=username,
            role=role,
            is_email_verified=verified,
            hashed_password=hash_password("password123"),
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


async def create_counselor(
    session_maker,
    email: str = "counselor@example.com",
    username: str = "calm_counselor",
    initials: str | None = "AB",
    meeting_link: str | None = COUNSELOR_LINK,
    timezone: str | None = None,
) -> User:
    user = await create_user(session_maker, email, role=UserRole.COUNSELOR, username=username)
    async with session_maker() as session:
        session.add(
            CounselorProfile(user_id=user.id, initials=initials, meeting_link=meeting_link, timezone=timezone)
        )
        await session.commit()
    return user


def identity_for(user: User) -> Identity:
    return user_to_identity(user)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
async def student(session_maker) -> User:
    return await create_user(session_maker, "student@example.com", username="river")


@pytest.fixture
async def counselor(session_maker) -> User:
    return await create_counselor(session_maker)


@pytest.fixture
async def client(session_maker, gateway, notifier, scheduler):
    from app.api.deps import get_notifier, get_payment_gateway, get_task_scheduler
    from app.core.db import get_session, get_session_maker
    from app.main import app

    async def _get_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_task_scheduler] = lambda: scheduler
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def book_session(session_maker, student: User, counselor: User, day: date, time: str = "09:00"):
    """Publish one slot for the counselor and book it for a new session of the student."""
    async with session_maker() as session:
        await publish(session, counselor.id, day, [time])
        await session.commit()
        result = await session.execute(
            select(Slot).where(Slot.counselor_id == counselor.id, Slot.day == day, Slot.time == time)
        )
        slot = result.scalar_one()
        bs = await start_session(session, identity_for(student), ["anxious"])
        await book_slot(session, identity_for(student), bs.id, slot.id)
        await session.commit()
        return bs


async def order_session(session_maker, gateway, student: User, counselor: User, day: date):
    bs = await book_session(session_maker, student, counselor, day)
    async with session_maker() as session:
        order = await create_order(session, identity_for(student), bs.id, gateway)
        await session.commit()
    return bs, order


async def verify_order(
    session_maker, gateway, student: User, bs_id: int, order_id: str, payment_id="pay_1", signature=None
):
    async with session_maker() as session:
        result = await verify_payment(
            session,
            identity_for(student),
            bs_id,
            order_id,
            payment_id,
            signature if signature is not None else gateway.sign(order_id, payment_id),
            gateway,
        )
        await session.commit()
        return result


async def paid_session(session_maker, gateway, student: User, counselor: User, day: date):
    bs, order = await order_session(session_maker, gateway, student, counselor, day)
    await verify_order(session_maker, gateway, student, bs.id, order.order_id)
    return bs
