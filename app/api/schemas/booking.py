from datetime import date, datetime, time

from pydantic import BaseModel, Field, field_serializer, field_validator

from app.core.intervals import check_wall_clock_minute, format_hhmm
from app.models.booking import Booking


class BookRequest(BaseModel):
    service_id: int
    provider_id: int
    booking_date: date
    start_time: time
    duration_minutes: int | None = Field(default=None, ge=15)
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("start_time")
    @classmethod
    def _whole_minutes(cls, v: time | None) -> time | None:
        return check_wall_clock_minute(v)


class ReasonRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class AcceptRequest(BaseModel):
    price: float | None = Field(default=None, ge=0)


class QuoteRequest(BaseModel):
    price: float = Field(ge=0)
    duration_hours: float | None = Field(default=None, ge=0.5)
    description: str | None = Field(default=None, max_length=1000)


class StartRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=500)


class CompleteRequest(BaseModel):
    final_price: float | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)


class BookingPublic(BaseModel):
    id: int
    booking_number: str | None = None
    customer_id: int
    provider_id: int
    service_id: int
    booking_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    status: str
    service_price: float
    customer_notes: str | None = None
    provider_notes: str | None = None
    cancellation_reason: str | None = None
    confirmed_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    hidden_by_provider: bool
    created_at: datetime

    @field_serializer("start_time", "end_time")
    def _hhmm(self, t: time) -> str:
        return format_hhmm(t)

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingPublic":
        return cls.model_validate(booking, from_attributes=True)


class Pagination(BaseModel):
    current_page: int
    last_page: int
    per_page: int
    total: int


class ProviderBookingList(BaseModel):
    data: list[BookingPublic]
    counts: dict[str, int]
    overdue_confirmed_count: int
    pagination: Pagination


class CompleteOverdueResponse(BaseModel):
    success: bool = True
    count: int


class VisibilityResponse(BaseModel):
    success: bool = True
    changed: bool
    hidden_by_provider: bool


class ProviderStatistics(BaseModel):
    total_bookings: int
    completed_bookings: int
    pending_bookings: int
    confirmed_bookings: int
    in_progress_bookings: int
    cancelled_bookings: int
    rejected_bookings: int
    completion_rate: float
