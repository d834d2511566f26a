import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ValidationError
from app.models.availability import DEFAULT_EXCEPTION_REASON, AvailabilityException

logger = logging.getLogger(__name__)

REASON_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 1000


def _validate(start_date: date, end_date: date, reason: str | None, description: str | None) -> None:
    if end_date < start_date:
        raise ValidationError(
            "Data zakończenia musi być późniejsza lub równa dacie rozpoczęcia", field="end_date"
        )
    if reason is not None and len(reason) > REASON_MAX_LENGTH:
        raise ValidationError(f"Powód może mieć maksymalnie {REASON_MAX_LENGTH} znaków", field="reason")
    if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Opis może mieć maksymalnie {DESCRIPTION_MAX_LENGTH} znaków", field="description"
        )


async def create_exception(
    session: AsyncSession,
    provider_id: int,
    start_date: date,
    end_date: date,
    reason: str | None = None,
    description: str | None = None,
) -> AvailabilityException:
    _validate(start_date, end_date, reason, description)
    exc = AvailabilityException(
        provider_id=provider_id,
        start_date=start_date,
        end_date=end_date,
        reason=reason or DEFAULT_EXCEPTION_REASON,
        description=description or None,
        is_approved=True,
    )
    session.add(exc)
    await session.flush()
    await session.refresh(exc)
    logger.info("Provider %s blocked %s..%s (%s)", provider_id, start_date, end_date, exc.reason)
    return exc


async def get_exception(session: AsyncSession, exception_id: int, provider_id: int) -> AvailabilityException:
    result = await session.execute(
        select(AvailabilityException).where(
            AvailabilityException.id == exception_id,
            AvailabilityException.provider_id == provider_id,
        )
    )
    exc = result.scalar_one_or_none()
    if not exc:
        raise NotFoundError("Blok nie został znaleziony")
    return exc


async def update_exception(
    session: AsyncSession,
    exception_id: int,
    provider_id: int,
    start_date: date,
    end_date: date,
    reason: str | None = None,
    description: str | None = None,
) -> AvailabilityException:
    exc = await get_exception(session, exception_id, provider_id)
    _validate(start_date, end_date, reason, description)
    exc.start_date = start_date
    exc.end_date = end_date
    exc.reason = reason or exc.reason
    exc.description = description or None
    session.add(exc)
    await session.flush()
    await session.refresh(exc)
    return exc


async def delete_exception(session: AsyncSession, exception_id: int, provider_id: int) -> None:
    exc = await get_exception(session, exception_id, provider_id)
    await session.delete(exc)
    await session.flush()


async def list_exceptions_for_provider(session: AsyncSession, provider_id: int) -> list[AvailabilityException]:
    result = await session.execute(
        select(AvailabilityException)
        .where(AvailabilityException.provider_id == provider_id)
        .order_by(AvailabilityException.start_date, AvailabilityException.id)
    )
    return list(result.scalars().all())


async def is_date_blocked(session: AsyncSession, provider_id: int, d: date) -> bool:
    result = await session.execute(
        select(AvailabilityException.id)
        .where(
            AvailabilityException.provider_id == provider_id,
            AvailabilityException.start_date <= d,
            AvailabilityException.end_date >= d,
        )
        .limit(1)
    )
    return result.first() is not None
