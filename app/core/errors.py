"""
Domain errors raised by the scheduling services.

Services raise these; the API layer renders them with a single exception handler
(see app.main) as ``{"error": message, "code": code, **context}``.
Ownership failures are reported as NotFoundError so other tenants' ids never leak.
"""
from __future__ import annotations

from typing import Any

# HTTP status codes for each error category
STATUS_UNPROCESSABLE = 422
STATUS_NOT_FOUND = 404
STATUS_FORBIDDEN = 403


class SchedulingError(Exception):
    status_code: int = STATUS_UNPROCESSABLE
    code: str = "scheduling_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, **self.context}


class ValidationError(SchedulingError):
    code = "validation_error"

    def __init__(self, message: str, field: str | None = None, **context: Any) -> None:
        if field:
            context["field"] = field
        super().__init__(message, **context)


class ConflictError(SchedulingError):
    code = "conflict"


class OutsideAvailabilityError(ConflictError):
    code = "outside_availability"


class SelfBookingError(ValidationError):
    code = "self_booking"


class NotFoundError(SchedulingError):
    status_code = STATUS_NOT_FOUND
    code = "not_found"


class InvalidStateError(SchedulingError):
    code = "invalid_state"

    def __init__(self, message: str, current_status: str, **context: Any) -> None:
        super().__init__(message, current_status=current_status, **context)
        self.current_status = current_status


class AuthorizationError(SchedulingError):
    status_code = STATUS_FORBIDDEN
    code = "forbidden"
