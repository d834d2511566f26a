from datetime import datetime

from sqlmodel import Field, SQLModel

from app.core.clock import utc_naive_now


class RefreshToken(SQLModel, table=True):
    """Issued refresh token, tracked by jti so it can be rotated or revoked."""

    __tablename__ = "refresh_tokens"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    jti: str = Field(unique=True, index=True)
    expires_at: datetime = Field(index=True)  # naive UTC
    revoked: bool = False
    created_at: datetime = Field(default_factory=utc_naive_now)

    def is_usable(self, now: datetime) -> bool:
        return not self.revoked and self.expires_at > now
