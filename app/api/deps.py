from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_session
from app.core.errors import AuthorizationError
from app.core.security import decode_access_token
from app.models.user import User

security = HTTPBearer(auto_error=False)


def refresh_header(x_refresh_token: str | None = Header(default=None, alias="X-Refresh-Token")) -> str | None:
    """Extract X-Refresh-Token header for logout/refresh endpoints."""
    return x_refresh_token


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Brak lub nieprawidłowy nagłówek Authorization")
    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        raise _unauthorized("Nieprawidłowy lub wygasły token")
    user = await session.get(User, user_id)
    if not user:
        raise _unauthorized("Użytkownik nie istnieje")
    return user


async def get_current_provider(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_provider:
        raise AuthorizationError("Dostęp tylko dla usługodawców")
    return current_user
