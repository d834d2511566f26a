import logging
from datetime import date, time, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import business_today, utc_naive_now
from app.core.config import settings
from app.core.errors import ConflictError, NotFoundError, OutsideAvailabilityError, ValidationError
from app.core.intervals import WALL_CLOCK_MESSAGE, TimeInterval, contains, is_wall_clock_minute, overlaps
from app.models.availability import DAY_NAMES, AvailabilityRule
from app.models.booking import ACTIVE_STATUSES, Booking
from app.services.exception_service import is_date_blocked

logger = logging.getLogger(__name__)

MSG_OVERLAP = "Konflikt czasowy - slot nachodzi na istniejącą dostępność"
MSG_HAS_BOOKINGS = "Nie można usunąć slotu z aktywnymi rezerwacjami"
MSG_NOT_FOUND = "Slot nie został znaleziony"
MSG_OUTSIDE_AVAILABILITY = "Usługodawca nie jest dostępny w wybranym terminie"

# Fields whose change requires re-validating the window and sibling overlap
_TIME_FIELDS = {"day_of_week", "start_time", "end_time", "break_start", "break_end", "is_available"}
_PATCHABLE = _TIME_FIELDS | {"max_bookings"}


def validate_rule_times(
    day_of_week: int,
    start_time: time,
    end_time: time,
    break_start: time | None,
    break_end: time | None,
    max_bookings: int,
) -> None:
    for name, value in (
        ("start_time", start_time),
        ("end_time", end_time),
        ("break_start", break_start),
        ("break_end", break_end),
    ):
        if value is not None and not is_wall_clock_minute(value):
            raise ValidationError(WALL_CLOCK_MESSAGE, field=name)
    if not 0 <= day_of_week <= 6:
        raise ValidationError("Dzień tygodnia musi być w zakresie 0-6 (poniedziałek-niedziela)", field="day_of_week")
    if end_time <= start_time:
        raise ValidationError("Godzina zakończenia musi być późniejsza niż rozpoczęcia", field="end_time")
    if (break_start is None) != (break_end is None):
        raise ValidationError("Przerwa wymaga podania początku i końca", field="break_start")
    if break_start is not None and break_end is not None:
        if not (start_time <= break_start < break_end <= end_time):
            raise ValidationError("Przerwa musi mieścić się w godzinach dostępności", field="break_start")
    if max_bookings < 1:
        raise ValidationError("Limit rezerwacji musi wynosić co najmniej 1", field="max_bookings")


async def _rules_for_day(
    session: AsyncSession, provider_id: int, day_of_week: int, only_available: bool = True
) -> list[AvailabilityRule]:
    q = select(AvailabilityRule).where(
        AvailabilityRule.provider_id == provider_id,
        AvailabilityRule.day_of_week == day_of_week,
    )
    if only_available:
        q = q.where(AvailabilityRule.is_available == True)  # noqa: E712
    result = await session.execute(q.order_by(AvailabilityRule.start_time))
    return list(result.scalars().all())


async def _ensure_no_overlap(
    session: AsyncSession,
    provider_id: int,
    day_of_week: int,
    window: TimeInterval,
    exclude_rule_id: int | None = None,
) -> None:
    for sibling in await _rules_for_day(session, provider_id, day_of_week):
        if sibling.id == exclude_rule_id:
            continue
        if overlaps(sibling.window, window):
            logger.info(
                "Rule overlap for provider %s day %s: %s-%s hits rule %s",
                provider_id, day_of_week, window.start, window.end, sibling.id,
            )
            raise ConflictError(
                MSG_OVERLAP,
                existing_slot={
                    "id": sibling.id,
                    "start_time": sibling.start_time.strftime("%H:%M"),
                    "end_time": sibling.end_time.strftime("%H:%M"),
                },
            )


async def create_rule(
    session: AsyncSession,
    provider_id: int,
    day_of_week: int,
    start_time: time,
    end_time: time,
    break_start: time | None = None,
    break_end: time | None = None,
    max_bookings: int = 1,
) -> AvailabilityRule:
    validate_rule_times(day_of_week, start_time, end_time, break_start, break_end, max_bookings)
    await _ensure_no_overlap(session, provider_id, day_of_week, TimeInterval(start_time, end_time))
    rule = AvailabilityRule(
        provider_id=provider_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        break_start=break_start,
        break_end=break_end,
        max_bookings=max_bookings,
        is_available=True,
    )
    session.add(rule)
    await session.flush()
    await session.refresh(rule)
    logger.info("Provider %s added rule %s (%s %s-%s)", provider_id, rule.id, DAY_NAMES[day_of_week], start_time, end_time)
    return rule


async def get_rule(session: AsyncSession, rule_id: int, provider_id: int) -> AvailabilityRule:
    result = await session.execute(
        select(AvailabilityRule).where(
            AvailabilityRule.id == rule_id,
            AvailabilityRule.provider_id == provider_id,
        )
    )
    rule = result.scalar_one_or_none()
    if not rule:
        raise NotFoundError(MSG_NOT_FOUND)
    return rule


async def update_rule(
    session: AsyncSession, rule_id: int, provider_id: int, patch: dict
) -> AvailabilityRule:
    """Apply a partial update. Only keys present in ``patch`` change; a break is cleared by
    passing both break fields as None."""
    rule = await get_rule(session, rule_id, provider_id)
    changes = {k: v for k, v in patch.items() if k in _PATCHABLE}
    merged = {f: changes.get(f, getattr(rule, f)) for f in _PATCHABLE}
    validate_rule_times(
        merged["day_of_week"],
        merged["start_time"],
        merged["end_time"],
        merged["break_start"],
        merged["break_end"],
        merged["max_bookings"],
    )
    if _TIME_FIELDS & changes.keys() and merged["is_available"]:
        await _ensure_no_overlap(
            session,
            provider_id,
            merged["day_of_week"],
            TimeInterval(merged["start_time"], merged["end_time"]),
            exclude_rule_id=rule.id,
        )
    for field, value in changes.items():
        setattr(rule, field, value)
    rule.updated_at = utc_naive_now()
    session.add(rule)
    await session.flush()
    await session.refresh(rule)
    return rule


async def active_bookings_in_rule(
    session: AsyncSession, rule: AvailabilityRule, today: date | None = None
) -> list[Booking]:
    """Upcoming non-terminal bookings that fall inside the rule's weekly window."""
    today = today or business_today()
    horizon = today + timedelta(days=settings.availability_delete_horizon_days)
    result = await session.execute(
        select(Booking).where(
            Booking.provider_id == rule.provider_id,
            Booking.status.in_([s.value for s in ACTIVE_STATUSES]),
            Booking.booking_date >= today,
            Booking.booking_date <= horizon,
        )
    )
    return [
        b
        for b in result.scalars().all()
        if b.booking_date.weekday() == rule.day_of_week and overlaps(rule.window, b.interval)
    ]


async def delete_rule(
    session: AsyncSession, rule_id: int, provider_id: int, today: date | None = None
) -> None:
    rule = await get_rule(session, rule_id, provider_id)
    blocking = await active_bookings_in_rule(session, rule, today=today)
    if blocking:
        raise ConflictError(MSG_HAS_BOOKINGS, booking_ids=[b.id for b in blocking])
    await session.delete(rule)
    await session.flush()
    logger.info("Provider %s deleted rule %s", provider_id, rule_id)


async def list_rules_for_provider(
    session: AsyncSession, provider_id: int, only_available: bool = False
) -> list[AvailabilityRule]:
    q = select(AvailabilityRule).where(AvailabilityRule.provider_id == provider_id)
    if only_available:
        q = q.where(AvailabilityRule.is_available == True)  # noqa: E712
    result = await session.execute(q.order_by(AvailabilityRule.day_of_week, AvailabilityRule.start_time))
    return list(result.scalars().all())


async def get_provider_schedule(session: AsyncSession, provider_id: int) -> dict[str, list[AvailabilityRule]]:
    """Active rules grouped by day name, every day present (Monday first)."""
    schedule: dict[str, list[AvailabilityRule]] = {name: [] for name in DAY_NAMES}
    for rule in await list_rules_for_provider(session, provider_id, only_available=True):
        schedule[DAY_NAMES[rule.day_of_week]].append(rule)
    return schedule


async def find_covering_rule(
    session: AsyncSession, provider_id: int, d: date, interval: TimeInterval
) -> AvailabilityRule | None:
    """Active rule whose window holds ``interval`` on that weekday without touching its break."""
    for rule in await _rules_for_day(session, provider_id, d.weekday()):
        if not contains(rule.window, interval):
            continue
        brk = rule.break_window
        if brk is not None and overlaps(brk, interval):
            continue
        return rule
    return None


async def require_availability(
    session: AsyncSession, provider_id: int, d: date, interval: TimeInterval
) -> AvailabilityRule:
    """Covering rule for ``interval`` on ``d``; OutsideAvailabilityError when blocked or uncovered."""
    if await is_date_blocked(session, provider_id, d):
        raise OutsideAvailabilityError(MSG_OUTSIDE_AVAILABILITY, reason="blocked_date")
    rule = await find_covering_rule(session, provider_id, d, interval)
    if rule is None:
        raise OutsideAvailabilityError(MSG_OUTSIDE_AVAILABILITY, reason="no_availability")
    return rule


async def is_available(
    session: AsyncSession, provider_id: int, d: date, start_time: time, duration_minutes: int
) -> bool:
    """True when ``d`` is not blocked and one active rule holds the whole interval clear of its break."""
    try:
        interval = TimeInterval.from_duration(start_time, duration_minutes)
        await require_availability(session, provider_id, d, interval)
    except (ValueError, OutsideAvailabilityError):
        return False
    return True
