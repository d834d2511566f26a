import asyncio
from datetime import time, timedelta, timezone

import pytest

from app.core.errors import ConflictError, NotFoundError, OutsideAvailabilityError, SelfBookingError, ValidationError
from app.models import BookingStatus
from app.services.booking_service import (
    BookingFilters,
    create_booking,
    find_conflicting,
    list_for_customer,
    list_for_provider,
)
from app.services.exception_service import create_exception

from tests.conftest import MONDAY, TODAY, add_booking, add_rule


def _book(session, customer, provider, service, start=time(10, 0), **kw):
    return create_booking(
        session,
        customer_id=customer.id,
        provider_id=provider.id,
        service_id=service.id,
        booking_date=kw.pop("booking_date", MONDAY),
        start_time=start,
        today=TODAY,
        **kw,
    )


async def test_create_booking_inside_availability(session, provider, customer, service):
    await add_rule(session, provider.id, day_of_week=MONDAY.weekday())
    booking = await _book(session, customer, provider, service, notes="Cieknie kran")
    assert booking.status == BookingStatus.PENDING.value
    assert booking.end_time == time(11, 0)
    assert booking.duration_minutes == service.duration_minutes
    assert booking.service_price == service.base_price
    assert booking.booking_number == f"BK-{MONDAY.year}-{booking.id:05d}"
    assert booking.customer_notes == "Cieknie kran"


async def test_self_booking_is_rejected(session, provider, service):
    await add_rule(session, provider.id, day_of_week=MONDAY.weekday())
    with pytest.raises(SelfBookingError):
        await _book(session, provider, provider, service)


async def test_past_date_is_rejected(session, provider, customer, service):
    with pytest.raises(ValidationError):
        await _book(session, customer, provider, service, booking_date=TODAY - timedelta(days=1))


async def test_booking_outside_rule_or_inside_break(session, provider, customer, service):
    await add_rule(
        session, provider.id, day_of_week=MONDAY.weekday(), break_start=time(12, 0), break_end=time(13, 0)
    )
    with pytest.raises(OutsideAvailabilityError):
        await _book(session, customer, provider, service, start=time(16, 30))
    with pytest.raises(OutsideAvailabilityError):
        await _book(session, customer, provider, service, start=time(11, 30))
    with pytest.raises(OutsideAvailabilityError):
        await _book(session, customer, provider, service, booking_date=MONDAY + timedelta(days=1))


@pytest.mark.parametrize("start", [time(10, 0, 30), time(10, 0, tzinfo=timezone.utc)])
async def test_start_time_must_be_a_naive_whole_minute(session, provider, customer, service, start):
    await add_rule(session, provider.id, day_of_week=MONDAY.weekday())
    with pytest.raises(ValidationError) as exc_info:
        await _book(session, customer, provider, service, start=start)
    assert exc_info.value.context["field"] == "start_time"


async def test_blocked_date_is_outside_availability(session, provider, customer, service):
    await add_rule(session, provider.id, day_of_week=MONDAY.weekday())
    await create_exception(session, provider.id, MONDAY, MONDAY)
    await session.commit()
    with pytest.raises(OutsideAvailabilityError) as exc_info:
        await _book(session, customer, provider, service)
    assert exc_info.value.context["reason"] == "blocked_date"


async def test_unknown_service_is_not_found(session, provider, other_provider, customer, service):
    await add_rule(session, other_provider.id, day_of_week=MONDAY.weekday())
    with pytest.raises(NotFoundError):
        await _book(session, customer, other_provider, service)


async def test_overlapping_booking_conflicts(session, provider, customer, second_customer, service):
    await add_rule(session, provider.id, day_of_week=MONDAY.weekday())
    first = await _book(session, customer, provider, service)
    with pytest.raises(ConflictError) as exc_info:
        await _book(session, second_customer, provider, service, start=time(10, 30))
    assert exc_info.value.context["conflicting_booking_ids"] == [first.id]
    # back-to-back is fine
    await _book(session, second_customer, provider, service, start=time(11, 0))


async def test_terminal_bookings_free_the_slot(session, provider, customer, second_customer, service):
    await add_rule(session, provider.id, day_of_week=MONDAY.weekday())
    await add_booking(session, customer.id, provider.id, service.id, MONDAY, status=BookingStatus.CANCELLED)
    await add_booking(session, customer.id, provider.id, service.id, MONDAY, status=BookingStatus.REJECTED)
    booking = await _book(session, second_customer, provider, service)
    assert booking.id is not None


async def test_concurrent_requests_for_one_slot(session_maker, session, provider, customer, second_customer, service):
    await add_rule(session, provider.id, day_of_week=MONDAY.weekday())

    async def attempt(who):
        async with session_maker() as s:
            return await _book(s, who, provider, service)

    results = await asyncio.gather(attempt(customer), attempt(second_customer), return_exceptions=True)
    created = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(created) == 1
    assert len(failed) == 1 and isinstance(failed[0], ConflictError)
    assert len(await find_conflicting(session, provider.id, MONDAY, time(10, 0), time(11, 0))) == 1


async def test_capacity_above_one(session_maker, session, provider, customer, second_customer, service):
    await add_rule(session, provider.id, day_of_week=MONDAY.weekday(), max_bookings=2)

    async def attempt(who):
        async with session_maker() as s:
            return await _book(s, who, provider, service)

    results = await asyncio.gather(
        attempt(customer), attempt(second_customer), attempt(customer), return_exceptions=True
    )
    assert sum(not isinstance(r, Exception) for r in results) == 2
    assert sum(isinstance(r, ConflictError) for r in results) == 1


async def test_provider_listing_filters_and_counts(session, provider, customer, second_customer, service):
    d = MONDAY
    await add_booking(session, customer.id, provider.id, service.id, d, status=BookingStatus.PENDING)
    await add_booking(session, customer.id, provider.id, service.id, d + timedelta(days=1), status=BookingStatus.CONFIRMED)
    await add_booking(session, second_customer.id, provider.id, service.id, d - timedelta(days=14), status=BookingStatus.CONFIRMED)
    await add_booking(session, second_customer.id, provider.id, service.id, d, status=BookingStatus.COMPLETED, hidden=True)

    page = await list_for_provider(session, provider.id, BookingFilters(status=BookingStatus.CONFIRMED), today=TODAY)
    assert page.total == 2
    assert page.counts["confirmed"] == 2
    assert page.counts["pending"] == 1
    # hidden bookings stay out of the default counts
    assert page.counts["completed"] == 0
    assert page.counts["total"] == 3
    assert page.overdue_confirmed_count == 1

    page = await list_for_provider(session, provider.id, BookingFilters(search="Kowal", hidden="all"), today=TODAY)
    assert {b.customer_id for b in page.items} == {second_customer.id}
    assert page.total == 2

    page = await list_for_provider(session, provider.id, BookingFilters(search="kranu"), today=TODAY)
    assert page.total == 3


async def test_provider_listing_sort_and_pagination(session, provider, customer, service):
    for offset in range(5):
        await add_booking(session, customer.id, provider.id, service.id, MONDAY + timedelta(days=offset))
    page = await list_for_provider(
        session, provider.id, BookingFilters(sort_by="booking_date", sort_order="asc", per_page=2, page=2)
    )
    assert [b.booking_date for b in page.items] == [MONDAY + timedelta(days=2), MONDAY + timedelta(days=3)]
    assert page.last_page == 3


def test_sort_column_is_whitelisted():
    with pytest.raises(ValueError):
        BookingFilters(sort_by="customer_id; DROP TABLE bookings")


async def test_customer_listing(session, provider, customer, second_customer, service):
    mine = await add_booking(session, customer.id, provider.id, service.id, MONDAY)
    await add_booking(session, second_customer.id, provider.id, service.id, MONDAY)
    await add_booking(session, customer.id, provider.id, service.id, MONDAY - timedelta(days=30))
    bookings = await list_for_customer(session, customer.id, from_date=MONDAY)
    assert [b.id for b in bookings] == [mine.id]
