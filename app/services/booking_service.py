import asyncio
import hashlib
import logging
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func, or_, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import business_today
from app.core.config import settings
from app.core.errors import (
    ConflictError,
    NotFoundError,
    SelfBookingError,
    ValidationError,
)
from app.core.intervals import WALL_CLOCK_MESSAGE, TimeInterval, is_wall_clock_minute, overlaps
from app.models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from app.models.service import Service
from app.models.user import User
from app.services.availability_service import require_availability

logger = logging.getLogger(__name__)

MSG_SLOT_TAKEN = "Wybrany termin jest już zajęty"
MSG_SELF_BOOKING = "Nie możesz rezerwować własnych usług"
MSG_BOOKING_NOT_FOUND = "Rezerwacja nie została znaleziona"

SORTABLE_COLUMNS = {
    "booking_date": Booking.booking_date,
    "start_time": Booking.start_time,
    "created_at": Booking.created_at,
    "service_price": Booking.service_price,
    "status": Booking.status,
}


class HiddenFilter(str, Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"
    ALL = "all"


class BookingFilters(BaseModel):
    """Listing filters; unknown sort columns are rejected when the filter is built."""

    status: BookingStatus | None = None
    customer_id: int | None = None
    service_id: int | None = None
    hidden: HiddenFilter = HiddenFilter.VISIBLE
    search: str | None = Field(default=None, max_length=100)
    sort_by: str = "booking_date"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=settings.bookings_per_page, ge=1, le=settings.bookings_max_per_page)

    @field_validator("sort_by")
    @classmethod
    def _whitelisted_sort(cls, v: str) -> str:
        if v not in SORTABLE_COLUMNS:
            raise ValueError(f"sort_by must be one of: {', '.join(sorted(SORTABLE_COLUMNS))}")
        return v


@dataclass
class BookingPage:
    items: list[Booking]
    total: int
    page: int
    per_page: int
    counts: dict[str, int] = field(default_factory=dict)
    overdue_confirmed_count: int = 0

    @property
    def last_page(self) -> int:
        return max(1, -(-self.total // self.per_page))


class _KeyedLocks:
    """asyncio locks created on demand and dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._locks: dict[tuple[int, date], asyncio.Lock] = {}
        self._users: Counter[tuple[int, date]] = Counter()

    @asynccontextmanager
    async def hold(self, key: tuple[int, date]):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


# In-process guard per (provider, date); PostgreSQL additionally gets an advisory lock
# so several API workers serialize on the same key.
_day_locks = _KeyedLocks()


def _advisory_key(provider_id: int, d: date) -> int:
    digest = hashlib.blake2b(f"{provider_id}:{d.isoformat()}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


@asynccontextmanager
async def provider_day_lock(session: AsyncSession, provider_id: int, d: date):
    """Hold while checking conflicts and writing; commit before leaving so waiters see the row."""
    async with _day_locks.hold((provider_id, d)):
        bind = session.bind
        if bind is not None and bind.dialect.name == "postgresql":
            await session.execute(
                text("SELECT pg_advisory_xact_lock(:key)"), {"key": _advisory_key(provider_id, d)}
            )
        yield


async def find_conflicting(
    session: AsyncSession,
    provider_id: int,
    d: date,
    start_time: time,
    end_time: time,
    exclude_booking_id: int | None = None,
) -> list[Booking]:
    """Active bookings of the provider on ``d`` overlapping ``[start_time, end_time)``."""
    q = select(Booking).where(
        Booking.provider_id == provider_id,
        Booking.booking_date == d,
        Booking.status.in_([s.value for s in ACTIVE_STATUSES]),
    )
    if exclude_booking_id is not None:
        q = q.where(Booking.id != exclude_booking_id)
    result = await session.execute(q.order_by(Booking.start_time))
    wanted = TimeInterval(start_time, end_time)
    return [b for b in result.scalars().all() if overlaps(b.interval, wanted)]


def booking_interval(start_time: time, duration_minutes: int) -> TimeInterval:
    if not is_wall_clock_minute(start_time):
        raise ValidationError(WALL_CLOCK_MESSAGE, field="start_time")
    if duration_minutes < 1 or duration_minutes > settings.max_booking_duration_minutes:
        raise ValidationError("Nieprawidłowy czas trwania usługi", field="duration_minutes")
    try:
        return TimeInterval.from_duration(start_time, duration_minutes)
    except ValueError:
        raise ValidationError("Rezerwacja nie może kończyć się po północy", field="duration_minutes")


async def ensure_capacity(
    session: AsyncSession,
    provider_id: int,
    d: date,
    interval: TimeInterval,
    exclude_booking_id: int | None = None,
) -> None:
    """Raise unless the interval lies inside availability and has room under ``max_bookings``."""
    rule = await require_availability(session, provider_id, d, interval)
    conflicting = await find_conflicting(
        session, provider_id, d, interval.start, interval.end, exclude_booking_id=exclude_booking_id
    )
    if len(conflicting) >= rule.max_bookings:
        logger.info(
            "Booking conflict provider=%s date=%s %s-%s (%d active, max %d)",
            provider_id, d, interval.start, interval.end, len(conflicting), rule.max_bookings,
        )
        raise ConflictError(
            MSG_SLOT_TAKEN,
            max_bookings=rule.max_bookings,
            current_bookings=len(conflicting),
            conflicting_booking_ids=[b.id for b in conflicting],
        )


async def get_service_for_provider(session: AsyncSession, service_id: int, provider_id: int) -> Service:
    service = await session.get(Service, service_id)
    if not service or service.provider_id != provider_id or not service.is_active:
        raise NotFoundError("Usługa nie została znaleziona")
    return service


async def create_booking(
    session: AsyncSession,
    customer_id: int,
    provider_id: int,
    service_id: int,
    booking_date: date,
    start_time: time,
    duration_minutes: int | None = None,
    notes: str | None = None,
    today: date | None = None,
) -> Booking:
    """Create a pending booking. Commits inside the provider-day lock."""
    if customer_id == provider_id:
        raise SelfBookingError(MSG_SELF_BOOKING, field="provider_id")
    if booking_date < (today or business_today()):
        raise ValidationError("Nie można rezerwować terminów w przeszłości", field="booking_date")
    provider = await session.get(User, provider_id)
    if not provider or not provider.is_provider:
        raise NotFoundError("Usługodawca nie został znaleziony")
    service = await get_service_for_provider(session, service_id, provider_id)
    duration = duration_minutes or service.duration_minutes or settings.booking_default_duration_minutes
    interval = booking_interval(start_time, duration)

    async with provider_day_lock(session, provider_id, booking_date):
        await ensure_capacity(session, provider_id, booking_date, interval)
        booking = Booking(
            customer_id=customer_id,
            provider_id=provider_id,
            service_id=service_id,
            booking_date=booking_date,
            start_time=interval.start,
            end_time=interval.end,
            duration_minutes=duration,
            status=BookingStatus.PENDING.value,
            service_price=service.base_price,
            customer_notes=notes,
        )
        session.add(booking)
        await session.flush()
        booking.booking_number = f"BK-{booking_date.year}-{booking.id:05d}"
        session.add(booking)
        await session.commit()
    await session.refresh(booking)
    logger.info(
        "Booking %s created: customer=%s provider=%s %s %s-%s",
        booking.booking_number, customer_id, provider_id, booking_date, interval.start, interval.end,
    )
    return booking


async def get_provider_booking(session: AsyncSession, booking_id: int, provider_id: int) -> Booking:
    result = await session.execute(
        select(Booking).where(Booking.id == booking_id, Booking.provider_id == provider_id)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError(MSG_BOOKING_NOT_FOUND)
    return booking


async def get_booking_for_user(session: AsyncSession, booking_id: int, user_id: int) -> Booking:
    """Booking visible to its customer or its provider; anyone else gets not-found."""
    booking = await session.get(Booking, booking_id)
    if not booking or user_id not in (booking.customer_id, booking.provider_id):
        raise NotFoundError(MSG_BOOKING_NOT_FOUND)
    return booking


def _apply_filters(q, filters: BookingFilters):
    if filters.customer_id is not None:
        q = q.where(Booking.customer_id == filters.customer_id)
    if filters.service_id is not None:
        q = q.where(Booking.service_id == filters.service_id)
    if filters.hidden == HiddenFilter.VISIBLE:
        q = q.where(Booking.hidden_by_provider == False)  # noqa: E712
    elif filters.hidden == HiddenFilter.HIDDEN:
        q = q.where(Booking.hidden_by_provider == True)  # noqa: E712
    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        q = q.where(
            or_(
                select(User.id)
                .where(User.id == Booking.customer_id, User.full_name.ilike(pattern))
                .exists(),
                select(Service.id)
                .where(Service.id == Booking.service_id, Service.title.ilike(pattern))
                .exists(),
            )
        )
    return q


async def list_for_provider(
    session: AsyncSession, provider_id: int, filters: BookingFilters | None = None, today: date | None = None
) -> BookingPage:
    filters = filters or BookingFilters()
    today = today or business_today()
    base = _apply_filters(select(Booking).where(Booking.provider_id == provider_id), filters)

    # Per-status counts ignore the status filter so the UI can show all tabs
    count_q = (
        base.with_only_columns(Booking.status, func.count(Booking.id))
        .group_by(Booking.status)
        .order_by(None)
    )
    counts = {s.value: 0 for s in BookingStatus}
    for status_value, n in (await session.execute(count_q)).all():
        counts[status_value] = n

    overdue_q = base.with_only_columns(func.count(Booking.id)).where(
        Booking.status == BookingStatus.CONFIRMED.value,
        Booking.booking_date < today,
    )
    overdue = (await session.execute(overdue_q)).scalar_one()

    q = base
    if filters.status is not None:
        q = q.where(Booking.status == filters.status.value)
    total = (await session.execute(q.with_only_columns(func.count(Booking.id)).order_by(None))).scalar_one()

    column = SORTABLE_COLUMNS[filters.sort_by]
    order = column.asc() if filters.sort_order == "asc" else column.desc()
    tiebreak = Booking.start_time.asc() if filters.sort_order == "asc" else Booking.start_time.desc()
    q = q.order_by(order, tiebreak, Booking.id).offset((filters.page - 1) * filters.per_page).limit(filters.per_page)
    items = list((await session.execute(q)).scalars().all())
    counts["total"] = sum(counts.values())
    return BookingPage(
        items=items,
        total=total,
        page=filters.page,
        per_page=filters.per_page,
        counts=counts,
        overdue_confirmed_count=overdue,
    )


async def list_for_customer(
    session: AsyncSession, customer_id: int, status: BookingStatus | None = None, from_date: date | None = None
) -> list[Booking]:
    q = select(Booking).where(Booking.customer_id == customer_id)
    if status is not None:
        q = q.where(Booking.status == status.value)
    if from_date:
        q = q.where(Booking.booking_date >= from_date)
    result = await session.execute(q.order_by(Booking.booking_date.desc(), Booking.start_time.desc()))
    return list(result.scalars().all())


async def list_in_range(
    session: AsyncSession,
    provider_id: int,
    start: date,
    end: date,
    statuses: tuple[BookingStatus, ...] = (BookingStatus.PENDING, BookingStatus.CONFIRMED),
) -> list[Booking]:
    result = await session.execute(
        select(Booking)
        .where(
            Booking.provider_id == provider_id,
            Booking.hidden_by_provider == False,  # noqa: E712
            Booking.status.in_([s.value for s in statuses]),
            Booking.booking_date >= start,
            Booking.booking_date <= end,
        )
        .order_by(Booking.booking_date, Booking.start_time)
    )
    return list(result.scalars().all())
