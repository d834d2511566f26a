"""Customer-side booking endpoints."""
import logging
from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.api.schemas.booking import BookingPublic, BookRequest, ReasonRequest
from app.core.db import get_session
from app.models.booking import BookingStatus
from app.models.user import User
from app.services.booking_lifecycle import cancel_booking
from app.services.booking_service import create_booking, get_booking_for_user, list_for_customer
from app.services.notification_service import queue_booking_notice

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingPublic, status_code=status.HTTP_201_CREATED)
async def book(
    body: BookRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> BookingPublic:
    booking = await create_booking(
        session,
        customer_id=current_user.id,
        provider_id=body.provider_id,
        service_id=body.service_id,
        booking_date=body.booking_date,
        start_time=body.start_time,
        duration_minutes=body.duration_minutes,
        notes=body.notes,
    )
    await queue_booking_notice(background_tasks, session, booking, "booking.created", booking.provider_id)
    return BookingPublic.from_booking(booking)


@router.get("", response_model=list[BookingPublic])
async def my_bookings(
    status_filter: BookingStatus | None = Query(None, alias="status"),
    from_date: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[BookingPublic]:
    bookings = await list_for_customer(session, current_user.id, status=status_filter, from_date=from_date)
    return [BookingPublic.from_booking(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingPublic)
async def booking_detail(
    booking_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> BookingPublic:
    return BookingPublic.from_booking(await get_booking_for_user(session, booking_id, current_user.id))


@router.patch("/{booking_id}/cancel", response_model=BookingPublic)
async def cancel(
    booking_id: int,
    background_tasks: BackgroundTasks,
    body: ReasonRequest | None = None,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> BookingPublic:
    booking = await cancel_booking(session, booking_id, current_user.id, reason=body.reason if body else None)
    await queue_booking_notice(background_tasks, session, booking, "booking.cancelled", booking.provider_id)
    return BookingPublic.from_booking(booking)
