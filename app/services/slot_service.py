from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import date, time

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.intervals import TimeInterval, add_minutes, overlaps
from app.models.availability import AvailabilityRule
from app.services.availability_service import list_rules_for_provider
from app.services.exception_service import is_date_blocked


def iter_rule_starts(rule: AvailabilityRule, duration_minutes: int, step_minutes: int) -> Iterator[time]:
    """Start times inside one rule whose ``[t, t+duration)`` fits the window and misses the break."""
    brk = rule.break_window
    offset = 0
    while True:
        try:
            candidate = add_minutes(rule.start_time, offset)
            slot = TimeInterval.from_duration(candidate, duration_minutes)
        except ValueError:
            return
        if slot.end > rule.end_time:
            return
        offset += step_minutes
        if brk is not None and overlaps(slot, brk):
            continue
        yield candidate


@dataclass(frozen=True)
class SlotSequence:
    """Bookable start times for one provider-day.

    Iterating walks the rules lazily; every ``iter()`` starts over. Duplicates produced by
    overlapping rules are emitted once. Existing bookings are not subtracted here.
    """

    rules: Sequence[AvailabilityRule]
    duration_minutes: int
    step_minutes: int = 30

    def __iter__(self) -> Iterator[time]:
        seen: set[time] = set()
        for rule in self.rules:
            for start in iter_rule_starts(rule, self.duration_minutes, self.step_minutes):
                if start not in seen:
                    seen.add(start)
                    yield start

    def as_strings(self) -> list[str]:
        return [t.strftime("%H:%M") for t in sorted(self)]


EMPTY = SlotSequence(rules=(), duration_minutes=1)


def build_slot_sequence(
    rules: Iterable[AvailabilityRule], d: date, duration_minutes: int, step_minutes: int | None = None
) -> SlotSequence:
    """Pure part of slot generation: pick the day's enabled rules and wrap them."""
    day_rules = sorted(
        (r for r in rules if r.is_available and r.day_of_week == d.weekday()),
        key=lambda r: r.start_time,
    )
    return SlotSequence(
        rules=tuple(day_rules),
        duration_minutes=duration_minutes,
        step_minutes=step_minutes or settings.slot_step_minutes,
    )


async def get_available_slots_for_date(
    session: AsyncSession, provider_id: int, d: date, duration_minutes: int | None = None
) -> SlotSequence:
    """Advertised start times for a provider on ``d``; empty when an exception covers the date."""
    duration = duration_minutes or settings.slot_default_duration_minutes
    if await is_date_blocked(session, provider_id, d):
        return EMPTY
    rules = await list_rules_for_provider(session, provider_id, only_available=True)
    return build_slot_sequence(rules, d, duration)
