from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from app.core.config import settings


def utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def business_today() -> date:
    """Calendar date in the marketplace's timezone; overdue checks and date validation use this."""
    return datetime.now(ZoneInfo(settings.timezone)).date()
