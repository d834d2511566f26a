from datetime import datetime

from sqlmodel import Field, SQLModel

from app.core.clock import utc_naive_now


class Service(SQLModel, table=True):
    """A bookable offer of a provider; supplies the default duration and price of a booking."""

    __tablename__ = "services"
    id: int | None = Field(default=None, primary_key=True)
    provider_id: int = Field(foreign_key="users.id", index=True)
    title: str = Field(max_length=255)
    duration_minutes: int = 60
    base_price: float = 0.0
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_naive_now)


class ServiceCreate(SQLModel):
    title: str = Field(min_length=1, max_length=255)
    duration_minutes: int = Field(default=60, ge=15, le=24 * 60)
    base_price: float = Field(default=0.0, ge=0)


class ServicePublic(SQLModel):
    id: int
    provider_id: int
    title: str
    duration_minutes: int
    base_price: float
    is_active: bool
