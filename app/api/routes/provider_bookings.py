"""Provider-side booking management: listing, lifecycle actions, visibility, statistics."""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_provider
from app.api.schemas.booking import (
    AcceptRequest,
    BookingPublic,
    CompleteOverdueResponse,
    CompleteRequest,
    Pagination,
    ProviderBookingList,
    ProviderStatistics,
    QuoteRequest,
    ReasonRequest,
    StartRequest,
    VisibilityResponse,
)
from app.core.db import get_session
from app.models.booking import Booking
from app.models.user import User
from app.services import booking_lifecycle
from app.services.booking_service import BookingFilters, get_provider_booking, list_for_provider
from app.services.notification_service import queue_booking_notice

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/provider/bookings", tags=["provider-bookings"])


async def _notify_customer(
    background_tasks: BackgroundTasks, session: AsyncSession, booking: Booking, event: str
) -> BookingPublic:
    await queue_booking_notice(background_tasks, session, booking, event, booking.customer_id)
    return BookingPublic.from_booking(booking)


@router.get("", response_model=ProviderBookingList)
async def list_bookings(
    status_filter: str | None = Query(None, alias="status"),
    customer_id: int | None = Query(None),
    service_id: int | None = Query(None),
    hidden: str = Query("visible"),
    search: str | None = Query(None),
    sort_by: str = Query("booking_date"),
    sort_order: str = Query("desc"),
    page: int = Query(1),
    per_page: int | None = Query(None),
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> ProviderBookingList:
    raw = {
        "status": status_filter,
        "customer_id": customer_id,
        "service_id": service_id,
        "hidden": hidden,
        "search": search,
        "sort_by": sort_by,
        "sort_order": sort_order,
        "page": page,
        "per_page": per_page,
    }
    try:
        filters = BookingFilters(**{k: v for k, v in raw.items() if v is not None})
    except PydanticValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        ) from e
    result = await list_for_provider(session, provider.id, filters)
    return ProviderBookingList(
        data=[BookingPublic.from_booking(b) for b in result.items],
        counts=result.counts,
        overdue_confirmed_count=result.overdue_confirmed_count,
        pagination=Pagination(
            current_page=result.page,
            last_page=result.last_page,
            per_page=result.per_page,
            total=result.total,
        ),
    )


@router.get("/statistics", response_model=ProviderStatistics)
async def statistics(
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> ProviderStatistics:
    return ProviderStatistics(**await booking_lifecycle.provider_statistics(session, provider.id))


@router.post("/complete-overdue", response_model=CompleteOverdueResponse)
async def complete_overdue(
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> CompleteOverdueResponse:
    ids = await booking_lifecycle.complete_overdue(session, provider_id=provider.id)
    return CompleteOverdueResponse(count=len(ids))


@router.get("/{booking_id}", response_model=BookingPublic)
async def booking_detail(
    booking_id: int,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> BookingPublic:
    return BookingPublic.from_booking(await get_provider_booking(session, booking_id, provider.id))


@router.post("/{booking_id}/accept", response_model=BookingPublic)
async def accept(
    booking_id: int,
    background_tasks: BackgroundTasks,
    body: AcceptRequest | None = None,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> BookingPublic:
    booking = await booking_lifecycle.accept_booking(
        session, booking_id, provider.id, price=body.price if body else None
    )
    return await _notify_customer(background_tasks, session, booking, "booking.confirmed")


@router.post("/{booking_id}/decline", response_model=BookingPublic)
async def decline(
    booking_id: int,
    background_tasks: BackgroundTasks,
    body: ReasonRequest | None = None,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> BookingPublic:
    booking = await booking_lifecycle.decline_booking(
        session, booking_id, provider.id, reason=body.reason if body else None
    )
    return await _notify_customer(background_tasks, session, booking, "booking.rejected")


@router.post("/{booking_id}/send-quote", response_model=BookingPublic)
async def send_quote(
    booking_id: int,
    body: QuoteRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> BookingPublic:
    booking = await booking_lifecycle.send_quote(
        session,
        booking_id,
        provider.id,
        price=body.price,
        duration_hours=body.duration_hours,
        description=body.description,
    )
    return await _notify_customer(background_tasks, session, booking, "booking.quote_sent")


@router.post("/{booking_id}/start", response_model=BookingPublic)
async def start(
    booking_id: int,
    background_tasks: BackgroundTasks,
    body: StartRequest | None = None,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> BookingPublic:
    booking = await booking_lifecycle.start_booking(
        session, booking_id, provider.id, notes=body.notes if body else None
    )
    return await _notify_customer(background_tasks, session, booking, "booking.started")


@router.post("/{booking_id}/complete", response_model=BookingPublic)
async def complete(
    booking_id: int,
    background_tasks: BackgroundTasks,
    body: CompleteRequest | None = None,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> BookingPublic:
    booking = await booking_lifecycle.complete_booking(
        session,
        booking_id,
        provider.id,
        final_price=body.final_price if body else None,
        notes=body.notes if body else None,
    )
    return await _notify_customer(background_tasks, session, booking, "booking.completed")


@router.delete("/{booking_id}", response_model=VisibilityResponse)
async def hide(
    booking_id: int,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> VisibilityResponse:
    """Hide from the provider's default listing; the booking itself is kept."""
    booking, changed = await booking_lifecycle.set_hidden(session, booking_id, provider.id, True)
    return VisibilityResponse(changed=changed, hidden_by_provider=booking.hidden_by_provider)


@router.post("/{booking_id}/restore", response_model=VisibilityResponse)
async def restore(
    booking_id: int,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> VisibilityResponse:
    booking, changed = await booking_lifecycle.set_hidden(session, booking_id, provider.id, False)
    return VisibilityResponse(changed=changed, hidden_by_provider=booking.hidden_by_provider)
