"""Public, unauthenticated availability of a provider."""
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas.availability import AvailableSlotsResponse, RulePublic
from app.core.config import settings
from app.core.db import get_session
from app.core.errors import NotFoundError
from app.models.service import ServicePublic
from app.models.user import User
from app.services.availability_service import get_provider_schedule
from app.services.service_catalog import list_services
from app.services.slot_service import get_available_slots_for_date

router = APIRouter(prefix="/providers", tags=["availability"])


async def _provider_or_404(session: AsyncSession, provider_id: int) -> User:
    provider = await session.get(User, provider_id)
    if not provider or not provider.is_provider:
        raise NotFoundError("Usługodawca nie został znaleziony")
    return provider


@router.get("/{provider_id}/availability/slots", response_model=AvailableSlotsResponse)
async def available_slots(
    provider_id: int,
    date_param: date = Query(..., alias="date"),
    duration_minutes: int = Query(settings.slot_default_duration_minutes, ge=15, le=24 * 60),
    session: AsyncSession = Depends(get_session),
) -> AvailableSlotsResponse:
    """Advertised start times ("HH:MM") for the date. Existing bookings are not subtracted."""
    await _provider_or_404(session, provider_id)
    slots = await get_available_slots_for_date(session, provider_id, date_param, duration_minutes)
    return AvailableSlotsResponse(date=date_param, duration_minutes=duration_minutes, slots=slots.as_strings())


@router.get("/{provider_id}/schedule", response_model=dict[str, list[RulePublic]])
async def provider_schedule(
    provider_id: int,
    session: AsyncSession = Depends(get_session),
) -> dict[str, list[RulePublic]]:
    await _provider_or_404(session, provider_id)
    schedule = await get_provider_schedule(session, provider_id)
    return {day: [RulePublic.from_rule(r) for r in rules] for day, rules in schedule.items()}


@router.get("/{provider_id}/services", response_model=list[ServicePublic])
async def provider_services(
    provider_id: int,
    session: AsyncSession = Depends(get_session),
) -> list[ServicePublic]:
    await _provider_or_404(session, provider_id)
    return [ServicePublic.model_validate(s, from_attributes=True) for s in await list_services(session, provider_id)]
