from datetime import date, datetime, time

from sqlmodel import Field, SQLModel

from app.core.clock import utc_naive_now
from app.core.intervals import TimeInterval

# Monday=0 .. Sunday=6, same as date.weekday()
DAY_NAMES = [
    "Poniedziałek",
    "Wtorek",
    "Środa",
    "Czwartek",
    "Piątek",
    "Sobota",
    "Niedziela",
]

DEFAULT_EXCEPTION_REASON = "Vacation"


def day_name(day_of_week: int) -> str:
    if 0 <= day_of_week < len(DAY_NAMES):
        return DAY_NAMES[day_of_week]
    return "Nieznany"


class AvailabilityRule(SQLModel, table=True):
    """Recurring weekly window in which a provider accepts bookings."""

    __tablename__ = "availability_rules"
    id: int | None = Field(default=None, primary_key=True)
    provider_id: int = Field(foreign_key="users.id", index=True)
    day_of_week: int = Field(index=True)
    start_time: time
    end_time: time
    break_start: time | None = None
    break_end: time | None = None
    max_bookings: int = 1
    is_available: bool = True
    created_at: datetime = Field(default_factory=utc_naive_now)
    updated_at: datetime = Field(default_factory=utc_naive_now)

    @property
    def window(self) -> TimeInterval:
        return TimeInterval(self.start_time, self.end_time)

    @property
    def break_window(self) -> TimeInterval | None:
        if self.break_start is None or self.break_end is None:
            return None
        return TimeInterval(self.break_start, self.break_end)


class AvailabilityException(SQLModel, table=True):
    """Inclusive date range (vacation, illness) during which no slots are offered."""

    __tablename__ = "availability_exceptions"
    id: int | None = Field(default=None, primary_key=True)
    provider_id: int = Field(foreign_key="users.id", index=True)
    start_date: date = Field(index=True)
    end_date: date = Field(index=True)
    reason: str = Field(default=DEFAULT_EXCEPTION_REASON, max_length=255)
    description: str | None = None
    # Always true: provider blocks are auto-approved, nothing reviews them.
    is_approved: bool = True
    created_at: datetime = Field(default_factory=utc_naive_now)

    def covers(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date
