"""
Booking status transitions.

pending -> quote_sent -> confirmed -> in_progress -> completed, with provider rejection
and customer cancellation as side exits. Every transition checks the current status
against ``TRANSITIONS`` and raises InvalidStateError carrying the status it found.
"""
import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import business_today, utc_naive_now
from app.core.errors import InvalidStateError, NotFoundError
from app.models.booking import Booking, BookingStatus
from app.services.booking_service import (
    booking_interval,
    ensure_capacity,
    get_provider_booking,
    provider_day_lock,
)

logger = logging.getLogger(__name__)

S = BookingStatus


@dataclass(frozen=True)
class Transition:
    allowed_from: frozenset[BookingStatus]
    target: BookingStatus
    message: str


TRANSITIONS: dict[str, Transition] = {
    "accept": Transition(
        frozenset({S.PENDING, S.QUOTE_SENT}), S.CONFIRMED,
        "Można zaakceptować tylko oczekujące rezerwacje",
    ),
    "decline": Transition(
        frozenset({S.PENDING}), S.REJECTED,
        "Można odrzucić tylko oczekujące rezerwacje",
    ),
    "send_quote": Transition(
        frozenset({S.PENDING}), S.QUOTE_SENT,
        "Wycenę można wysłać tylko dla oczekującej rezerwacji",
    ),
    "start": Transition(
        frozenset({S.CONFIRMED}), S.IN_PROGRESS,
        "Można rozpocząć tylko potwierdzone rezerwacje",
    ),
    "complete": Transition(
        frozenset({S.IN_PROGRESS}), S.COMPLETED,
        "Można zakończyć tylko rezerwacje w trakcie realizacji",
    ),
    "cancel": Transition(
        frozenset({S.PENDING, S.CONFIRMED}), S.CANCELLED,
        "Można anulować tylko oczekujące lub potwierdzone rezerwacje",
    ),
}


def check_transition(booking: Booking, action: str) -> Transition:
    transition = TRANSITIONS[action]
    if booking.status_enum not in transition.allowed_from:
        raise InvalidStateError(transition.message, current_status=booking.status_enum.value)
    return transition


def apply_transition(booking: Booking, action: str) -> BookingStatus:
    """Move ``booking`` along ``action`` or raise InvalidStateError with its current status."""
    transition = check_transition(booking, action)
    current = booking.status_enum
    booking.status = transition.target.value
    booking.updated_at = utc_naive_now()
    logger.info("Booking %s: %s -> %s (%s)", booking.id, current.value, transition.target.value, action)
    return transition.target


async def _save(session: AsyncSession, booking: Booking) -> Booking:
    session.add(booking)
    await session.flush()
    await session.refresh(booking)
    return booking


async def accept_booking(
    session: AsyncSession, booking_id: int, provider_id: int, price: float | None = None
) -> Booking:
    booking = await get_provider_booking(session, booking_id, provider_id)
    apply_transition(booking, "accept")
    booking.confirmed_at = utc_naive_now()
    if price is not None:
        booking.service_price = price
    return await _save(session, booking)


async def decline_booking(
    session: AsyncSession, booking_id: int, provider_id: int, reason: str | None = None
) -> Booking:
    booking = await get_provider_booking(session, booking_id, provider_id)
    apply_transition(booking, "decline")
    booking.cancellation_reason = reason or "Odrzucone przez usługodawcę"
    booking.cancelled_by = provider_id
    booking.cancelled_at = utc_naive_now()
    return await _save(session, booking)


async def send_quote(
    session: AsyncSession,
    booking_id: int,
    provider_id: int,
    price: float,
    duration_hours: float | None = None,
    description: str | None = None,
) -> Booking:
    """Quote a price and optionally a new length; a longer booking must still fit the schedule."""
    booking = await get_provider_booking(session, booking_id, provider_id)
    check_transition(booking, "send_quote")
    if duration_hours:
        duration = int(duration_hours * 60)
        interval = booking_interval(booking.start_time, duration)
        async with provider_day_lock(session, provider_id, booking.booking_date):
            await ensure_capacity(
                session, provider_id, booking.booking_date, interval, exclude_booking_id=booking.id
            )
            booking.duration_minutes = duration
            booking.end_time = interval.end
            apply_transition(booking, "send_quote")
            _apply_quote(booking, price, description)
            await session.commit()
        await session.refresh(booking)
        return booking
    apply_transition(booking, "send_quote")
    _apply_quote(booking, price, description)
    return await _save(session, booking)


def _apply_quote(booking: Booking, price: float, description: str | None) -> None:
    booking.service_price = price
    if description:
        booking.provider_notes = description


async def start_booking(
    session: AsyncSession, booking_id: int, provider_id: int, notes: str | None = None
) -> Booking:
    booking = await get_provider_booking(session, booking_id, provider_id)
    apply_transition(booking, "start")
    booking.started_at = utc_naive_now()
    if notes:
        booking.provider_notes = notes
    return await _save(session, booking)


async def complete_booking(
    session: AsyncSession,
    booking_id: int,
    provider_id: int,
    final_price: float | None = None,
    notes: str | None = None,
) -> Booking:
    booking = await get_provider_booking(session, booking_id, provider_id)
    apply_transition(booking, "complete")
    booking.completed_at = utc_naive_now()
    if final_price is not None:
        booking.service_price = final_price
    if notes:
        booking.provider_notes = "\n".join(filter(None, [booking.provider_notes, notes]))
    return await _save(session, booking)


async def cancel_booking(
    session: AsyncSession, booking_id: int, customer_id: int, reason: str | None = None
) -> Booking:
    booking = await session.get(Booking, booking_id)
    if not booking or booking.customer_id != customer_id:
        raise NotFoundError("Rezerwacja nie została znaleziona")
    apply_transition(booking, "cancel")
    booking.cancellation_reason = reason or "Anulowana przez klienta"
    booking.cancelled_by = customer_id
    booking.cancelled_at = utc_naive_now()
    return await _save(session, booking)


async def complete_overdue(
    session: AsyncSession, provider_id: int | None = None, today: date | None = None
) -> list[int]:
    """Mark confirmed bookings dated before today as completed. Returns the ids it changed.

    One UPDATE ... RETURNING, so a booking moved out of ``confirmed`` by a concurrent
    request is neither touched nor counted. Safe to re-run.
    ``provider_id=None`` sweeps every provider (scheduled job).
    """
    now = utc_naive_now()
    stmt = update(Booking).where(
        Booking.status == S.CONFIRMED.value,
        Booking.booking_date < (today or business_today()),
    )
    if provider_id is not None:
        stmt = stmt.where(Booking.provider_id == provider_id)
    result = await session.execute(
        stmt.values(status=S.COMPLETED.value, completed_at=now, updated_at=now)
        .returning(Booking.id)
        .execution_options(synchronize_session="fetch")
    )
    ids = list(result.scalars().all())
    await session.flush()
    if ids:
        logger.info("Completed %d overdue booking(s) for provider=%s", len(ids), provider_id or "*")
    return ids


async def set_hidden(session: AsyncSession, booking_id: int, provider_id: int, hidden: bool) -> tuple[Booking, bool]:
    """Toggle provider visibility. Returns (booking, changed); repeating is a no-op."""
    booking = await get_provider_booking(session, booking_id, provider_id)
    if booking.hidden_by_provider == hidden:
        return booking, False
    booking.hidden_by_provider = hidden
    booking.updated_at = utc_naive_now()
    return await _save(session, booking), True


async def provider_statistics(session: AsyncSession, provider_id: int) -> dict:
    """Counts per status over every booking of the provider, hidden ones included."""
    rows = (
        await session.execute(
            select(Booking.status, func.count(Booking.id))
            .where(Booking.provider_id == provider_id)
            .group_by(Booking.status)
        )
    ).all()
    by_status = {s.value: 0 for s in BookingStatus}
    by_status.update({status: n for status, n in rows})
    total = sum(by_status.values())
    completed = by_status[S.COMPLETED.value]
    return {
        "total_bookings": total,
        "completed_bookings": completed,
        "pending_bookings": by_status[S.PENDING.value] + by_status[S.QUOTE_SENT.value],
        "confirmed_bookings": by_status[S.CONFIRMED.value],
        "in_progress_bookings": by_status[S.IN_PROGRESS.value],
        "cancelled_bookings": by_status[S.CANCELLED.value],
        "rejected_bookings": by_status[S.REJECTED.value],
        "completion_rate": round(completed / total * 100, 2) if total else 0.0,
    }
