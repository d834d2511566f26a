"""Provider-side management of weekly availability rules and date blocks."""
from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_provider
from app.api.schemas.availability import (
    CalendarBooking,
    CalendarResponse,
    DateRange,
    ExceptionPublic,
    ExceptionRequest,
    RuleCreateRequest,
    RulePublic,
    RuleUpdateRequest,
)
from app.core.clock import business_today
from app.core.config import settings
from app.core.db import get_session
from app.core.errors import ValidationError
from app.core.intervals import format_hhmm
from app.models.booking import Booking
from app.models.service import Service
from app.models.user import User
from app.services import availability_service, exception_service
from app.services.booking_service import list_in_range

router = APIRouter(prefix="/provider/calendar", tags=["calendar"])


def _default_range() -> tuple[date, date]:
    today = business_today()
    start = today - timedelta(days=today.weekday())
    end = start + timedelta(weeks=settings.calendar_weeks_ahead, days=6)
    return start, end


async def _calendar_booking(session: AsyncSession, booking: Booking) -> CalendarBooking:
    customer = await session.get(User, booking.customer_id)
    service = await session.get(Service, booking.service_id)
    return CalendarBooking(
        id=booking.id,
        booking_number=booking.booking_number,
        booking_date=booking.booking_date,
        day_of_week=booking.booking_date.weekday(),
        start_time=format_hhmm(booking.start_time),
        end_time=format_hhmm(booking.end_time),
        customer_name=(customer.full_name if customer else None) or "Nieznany",
        service_name=service.title if service else "Nieznana usługa",
        status=booking.status,
        duration_minutes=booking.duration_minutes,
    )


@router.get("", response_model=CalendarResponse)
async def get_calendar(
    start: date | None = Query(None),
    end: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> CalendarResponse:
    """Active rules plus pending/confirmed bookings in the range (default: this week + N weeks)."""
    default_start, default_end = _default_range()
    start = start or default_start
    end = end or default_end
    if end < start:
        raise ValidationError("Nieprawidłowy zakres dat", field="end")
    rules = await availability_service.list_rules_for_provider(session, provider.id, only_available=True)
    bookings = await list_in_range(session, provider.id, start, end)
    return CalendarResponse(
        slots=[RulePublic.from_rule(r) for r in rules],
        bookings=[await _calendar_booking(session, b) for b in bookings],
        date_range=DateRange(start=start, end=end),
    )


@router.get("/slots", response_model=list[RulePublic])
async def list_rules(
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> list[RulePublic]:
    rules = await availability_service.list_rules_for_provider(session, provider.id)
    return [RulePublic.from_rule(r) for r in rules]


@router.post("/slots", response_model=RulePublic, status_code=status.HTTP_201_CREATED)
async def create_rule(
    body: RuleCreateRequest,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> RulePublic:
    rule = await availability_service.create_rule(
        session,
        provider.id,
        day_of_week=body.day_of_week,
        start_time=body.start_time,
        end_time=body.end_time,
        break_start=body.break_start,
        break_end=body.break_end,
        max_bookings=body.max_bookings,
    )
    return RulePublic.from_rule(rule)


@router.put("/slots/{rule_id}", response_model=RulePublic)
async def update_rule(
    rule_id: int,
    body: RuleUpdateRequest,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> RulePublic:
    rule = await availability_service.update_rule(
        session, rule_id, provider.id, body.model_dump(exclude_unset=True)
    )
    return RulePublic.from_rule(rule)


@router.delete("/slots/{rule_id}")
async def delete_rule(
    rule_id: int,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> dict:
    await availability_service.delete_rule(session, rule_id, provider.id)
    return {"message": "Slot został usunięty"}


@router.get("/exceptions", response_model=list[ExceptionPublic])
async def list_exceptions(
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> list[ExceptionPublic]:
    rows = await exception_service.list_exceptions_for_provider(session, provider.id)
    return [ExceptionPublic.from_exception(e) for e in rows]


@router.post("/exceptions", response_model=ExceptionPublic, status_code=status.HTTP_201_CREATED)
async def create_exception(
    body: ExceptionRequest,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> ExceptionPublic:
    exc = await exception_service.create_exception(
        session, provider.id, body.start_date, body.end_date, body.reason, body.description
    )
    return ExceptionPublic.from_exception(exc)


@router.put("/exceptions/{exception_id}", response_model=ExceptionPublic)
async def update_exception(
    exception_id: int,
    body: ExceptionRequest,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> ExceptionPublic:
    exc = await exception_service.update_exception(
        session, exception_id, provider.id, body.start_date, body.end_date, body.reason, body.description
    )
    return ExceptionPublic.from_exception(exc)


@router.delete("/exceptions/{exception_id}")
async def delete_exception(
    exception_id: int,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> dict:
    await exception_service.delete_exception(session, exception_id, provider.id)
    return {"message": "Blok dostępności został usunięty"}
