from datetime import date, time

from pydantic import BaseModel, Field, field_serializer, field_validator

from app.core.intervals import check_wall_clock_minute, format_hhmm
from app.models.availability import AvailabilityException, AvailabilityRule, day_name


class RuleCreateRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6, description="0 = Monday ... 6 = Sunday")
    start_time: time
    end_time: time
    break_start: time | None = None
    break_end: time | None = None
    max_bookings: int = Field(default=1, ge=1, le=100)

    @field_validator("start_time", "end_time", "break_start", "break_end")
    @classmethod
    def _whole_minutes(cls, v: time | None) -> time | None:
        return check_wall_clock_minute(v)


class RuleUpdateRequest(BaseModel):
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    start_time: time | None = None
    end_time: time | None = None
    break_start: time | None = None
    break_end: time | None = None
    max_bookings: int | None = Field(default=None, ge=1, le=100)
    is_available: bool | None = None

    @field_validator("start_time", "end_time", "break_start", "break_end")
    @classmethod
    def _whole_minutes(cls, v: time | None) -> time | None:
        return check_wall_clock_minute(v)


class RulePublic(BaseModel):
    id: int
    day_of_week: int
    day_name: str
    start_time: time
    end_time: time
    break_start: time | None = None
    break_end: time | None = None
    max_bookings: int
    is_available: bool

    @field_serializer("start_time", "end_time", "break_start", "break_end")
    def _hhmm(self, t: time | None) -> str | None:
        return format_hhmm(t)

    @classmethod
    def from_rule(cls, rule: AvailabilityRule) -> "RulePublic":
        return cls(
            id=rule.id,
            day_of_week=rule.day_of_week,
            day_name=day_name(rule.day_of_week),
            start_time=rule.start_time,
            end_time=rule.end_time,
            break_start=rule.break_start,
            break_end=rule.break_end,
            max_bookings=rule.max_bookings,
            is_available=rule.is_available,
        )


class ExceptionRequest(BaseModel):
    start_date: date
    end_date: date
    reason: str | None = None
    description: str | None = None


class ExceptionPublic(BaseModel):
    id: int
    provider_id: int
    start_date: date
    end_date: date
    reason: str
    description: str | None = None
    is_approved: bool

    @classmethod
    def from_exception(cls, exc: AvailabilityException) -> "ExceptionPublic":
        return cls.model_validate(exc, from_attributes=True)


class CalendarBooking(BaseModel):
    id: int
    booking_number: str | None = None
    booking_date: date
    day_of_week: int
    start_time: str
    end_time: str
    customer_name: str
    service_name: str
    status: str
    duration_minutes: int


class DateRange(BaseModel):
    start: date
    end: date


class CalendarResponse(BaseModel):
    slots: list[RulePublic]
    bookings: list[CalendarBooking]
    date_range: DateRange


class AvailableSlotsResponse(BaseModel):
    date: date
    duration_minutes: int
    slots: list[str]  # "HH:MM"
