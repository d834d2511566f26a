import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utc_naive_now
from app.core.config import settings
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)
from app.models.refresh_token import RefreshToken
from app.models.user import User, UserCreate, UserPublic

logger = logging.getLogger(__name__)

TokenResult = tuple[User, str, str, int]


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def create_user(session: AsyncSession, data: UserCreate) -> User:
    user = User(
        email=data.email.lower(),
        full_name=data.full_name,
        role=data.role.value,
        hashed_password=hash_password(data.password),
    )
    session.add(user)
    await session.flush()
    await session.refresh(user)
    logger.info("User %s registered as %s", user.id, user.role)
    return user


def user_to_public(user: User) -> UserPublic:
    return UserPublic(id=user.id, email=user.email, full_name=user.full_name, role=user.role)


async def issue_tokens(session: AsyncSession, user: User) -> TokenResult:
    access = create_access_token(user.id, user.role)
    refresh, jti, expires_at = create_refresh_token(user.id)
    session.add(RefreshToken(user_id=user.id, jti=jti, expires_at=expires_at))
    await session.flush()
    return user, access, refresh, settings.access_token_expire_minutes * 60


async def login_user(session: AsyncSession, email: str, password: str) -> TokenResult | None:
    user = await get_user_by_email(session, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return await issue_tokens(session, user)


async def signup_user(session: AsyncSession, data: UserCreate) -> TokenResult | None:
    if await get_user_by_email(session, data.email):
        return None
    user = await create_user(session, data)
    return await issue_tokens(session, user)


async def _find_token(session: AsyncSession, jti: str) -> RefreshToken | None:
    result = await session.execute(select(RefreshToken).where(RefreshToken.jti == jti))
    return result.scalar_one_or_none()


async def revoke_refresh_token(session: AsyncSession, refresh_token: str) -> None:
    _, jti = decode_refresh_token(refresh_token)
    if not jti:
        return
    row = await _find_token(session, jti)
    if row:
        row.revoked = True
        session.add(row)


async def refresh_tokens(session: AsyncSession, refresh_token: str) -> TokenResult | None:
    """Rotate: the presented token is revoked and a fresh pair is issued."""
    user_id, jti = decode_refresh_token(refresh_token)
    if not user_id or not jti:
        return None
    row = await _find_token(session, jti)
    if not row or not row.is_usable(utc_naive_now()):
        return None
    user = await session.get(User, user_id)
    if not user:
        return None
    row.revoked = True
    session.add(row)
    return await issue_tokens(session, user)
