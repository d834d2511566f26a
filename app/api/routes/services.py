from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_provider
from app.core.db import get_session
from app.models.service import ServiceCreate, ServicePublic
from app.models.user import User
from app.services.service_catalog import create_service, list_services

router = APIRouter(prefix="/provider/services", tags=["services"])


@router.get("", response_model=list[ServicePublic])
async def my_services(
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> list[ServicePublic]:
    services = await list_services(session, provider.id, only_active=False)
    return [ServicePublic.model_validate(s, from_attributes=True) for s in services]


@router.post("", response_model=ServicePublic, status_code=status.HTTP_201_CREATED)
async def add_service(
    body: ServiceCreate,
    session: AsyncSession = Depends(get_session),
    provider: User = Depends(get_current_provider),
) -> ServicePublic:
    service = await create_service(session, provider.id, body)
    return ServicePublic.model_validate(service, from_attributes=True)
