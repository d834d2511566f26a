import os
from datetime import date, time, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("OVERDUE_JOB_ENABLED", "false")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from app.core.db import get_session
from app.core.security import create_access_token
from app.main import app
from app.models import AvailabilityRule, Booking, BookingStatus, Service, User, UserRole

# A Monday far enough ahead that "today" checks never reject it
MONDAY = date(2030, 1, 7)
TODAY = MONDAY - timedelta(days=7)


def upcoming_weekday(weekday: int, weeks_ahead: int = 1) -> date:
    """Date of ``weekday`` at least a week after the real current date."""
    today = date.today()
    return today + timedelta(days=(weekday - today.weekday()) % 7 + 7 * weeks_ahead)


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


@pytest.fixture
async def client(session_maker):
    async def _override_session():
        async with session_maker() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _override_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def make_user(session: AsyncSession, email: str, role: UserRole, full_name: str | None = None) -> User:
    user = User(email=email, full_name=full_name, role=role.value, hashed_password="x")
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest.fixture
async def provider(session):
    return await make_user(session, "hydraulik@example.com", UserRole.PROVIDER, "Jan Hydraulik")


@pytest.fixture
async def other_provider(session):
    return await make_user(session, "elektryk@example.com", UserRole.PROVIDER, "Ewa Elektryk")


@pytest.fixture
async def customer(session):
    return await make_user(session, "klient@example.com", UserRole.CUSTOMER, "Anna Nowak")


@pytest.fixture
async def second_customer(session):
    return await make_user(session, "klient2@example.com", UserRole.CUSTOMER, "Piotr Kowalski")


@pytest.fixture
async def service(session, provider):
    svc = Service(provider_id=provider.id, title="Naprawa kranu", duration_minutes=60, base_price=150.0)
    session.add(svc)
    await session.commit()
    await session.refresh(svc)
    return svc


async def add_rule(
    session: AsyncSession,
    provider_id: int,
    day_of_week: int = 0,
    start: time = time(9, 0),
    end: time = time(17, 0),
    break_start: time | None = None,
    break_end: time | None = None,
    max_bookings: int = 1,
) -> AvailabilityRule:
    rule = AvailabilityRule(
        provider_id=provider_id,
        day_of_week=day_of_week,
        start_time=start,
        end_time=end,
        break_start=break_start,
        break_end=break_end,
        max_bookings=max_bookings,
    )
    session.add(rule)
    await session.commit()
    await session.refresh(rule)
    return rule


async def add_booking(
    session: AsyncSession,
    customer_id: int,
    provider_id: int,
    service_id: int,
    booking_date: date,
    start: time = time(10, 0),
    end: time = time(11, 0),
    status: BookingStatus = BookingStatus.PENDING,
    hidden: bool = False,
) -> Booking:
    """Insert a booking directly, bypassing the availability checks."""
    booking = Booking(
        customer_id=customer_id,
        provider_id=provider_id,
        service_id=service_id,
        booking_date=booking_date,
        start_time=start,
        end_time=end,
        duration_minutes=(end.hour * 60 + end.minute) - (start.hour * 60 + start.minute),
        status=status.value,
        service_price=100.0,
        hidden_by_provider=hidden,
    )
    session.add(booking)
    await session.commit()
    await session.refresh(booking)
    return booking


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
