from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.service import Service, ServiceCreate


async def create_service(session: AsyncSession, provider_id: int, data: ServiceCreate) -> Service:
    service = Service(
        provider_id=provider_id,
        title=data.title,
        duration_minutes=data.duration_minutes,
        base_price=data.base_price,
    )
    session.add(service)
    await session.flush()
    await session.refresh(service)
    return service


async def list_services(session: AsyncSession, provider_id: int, only_active: bool = True) -> list[Service]:
    q = select(Service).where(Service.provider_id == provider_id)
    if only_active:
        q = q.where(Service.is_active == True)  # noqa: E712
    result = await session.execute(q.order_by(Service.title))
    return list(result.scalars().all())
