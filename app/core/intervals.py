"""Half-open time-of-day intervals ``[start, end)`` used by slot generation and conflict checks."""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta


@dataclass(frozen=True)
class TimeInterval:
    start: time
    end: time

    @classmethod
    def from_duration(cls, start: time, duration_minutes: int) -> "TimeInterval":
        return cls(start, add_minutes(start, duration_minutes))

    @property
    def minutes(self) -> int:
        return minutes_of(self.end) - minutes_of(self.start)


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    """Touching endpoints do not overlap."""
    return a.start < b.end and b.start < a.end


def contains(outer: TimeInterval, inner: TimeInterval) -> bool:
    return outer.start <= inner.start and inner.end <= outer.end


def minutes_of(t: time) -> int:
    return t.hour * 60 + t.minute


def add_minutes(t: time, minutes: int) -> time:
    """Shift a time-of-day forward. Raises ValueError when the result leaves the day."""
    shifted = datetime.combine(date.min, t) + timedelta(minutes=minutes)
    if shifted.date() != date.min:
        raise ValueError(f"{t.isoformat()} + {minutes} min crosses midnight")
    return shifted.time()


def format_hhmm(t: time | None) -> str | None:
    return t.strftime("%H:%M") if t is not None else None


WALL_CLOCK_MESSAGE = "Godzina musi mieć format HH:MM bez sekund i strefy czasowej"


def is_wall_clock_minute(t: time) -> bool:
    """Naive and on a whole minute; rules, slots and bookings only use such values."""
    return t.tzinfo is None and t.second == 0 and t.microsecond == 0


def check_wall_clock_minute(t: time | None) -> time | None:
    """Pydantic validator body for request time fields."""
    if t is not None and not is_wall_clock_minute(t):
        raise ValueError(WALL_CLOCK_MESSAGE)
    return t
