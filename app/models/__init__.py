from app.models.user import User, UserCreate, UserPublic, UserRole
from app.models.refresh_token import RefreshToken
from app.models.service import Service, ServiceCreate, ServicePublic
from app.models.availability import AvailabilityException, AvailabilityRule
from app.models.booking import ACTIVE_STATUSES, TERMINAL_STATUSES, Booking, BookingStatus

__all__ = [
    "User",
    "UserCreate",
    "UserPublic",
    "UserRole",
    "RefreshToken",
    "Service",
    "ServiceCreate",
    "ServicePublic",
    "AvailabilityRule",
    "AvailabilityException",
    "Booking",
    "BookingStatus",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
]
