from datetime import date, datetime, time
from enum import Enum

from sqlalchemy import Column, Index, String
from sqlmodel import Field, SQLModel

from app.core.clock import utc_naive_now
from app.core.intervals import TimeInterval


class BookingStatus(str, Enum):
    PENDING = "pending"
    QUOTE_SENT = "quote_sent"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.REJECTED}
)
# Bookings in these states occupy provider time
ACTIVE_STATUSES = frozenset(s for s in BookingStatus if s not in TERMINAL_STATUSES)


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_provider_date", "provider_id", "booking_date"),)

    id: int | None = Field(default=None, primary_key=True)
    booking_number: str | None = Field(default=None, unique=True)
    customer_id: int = Field(foreign_key="users.id", index=True)
    provider_id: int = Field(foreign_key="users.id", index=True)
    service_id: int = Field(foreign_key="services.id", index=True)
    booking_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    status: str = Field(
        default=BookingStatus.PENDING.value,
        sa_column=Column(String(20), nullable=False, index=True, default=BookingStatus.PENDING.value),
    )
    service_price: float = 0.0
    customer_notes: str | None = None
    provider_notes: str | None = None
    cancellation_reason: str | None = None
    cancelled_by: int | None = None
    confirmed_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    hidden_by_provider: bool = False
    created_at: datetime = Field(default_factory=utc_naive_now)
    updated_at: datetime = Field(default_factory=utc_naive_now)

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start_time, self.end_time)

    @property
    def status_enum(self) -> BookingStatus:
        return BookingStatus(self.status)
