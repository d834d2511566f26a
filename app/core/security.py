from datetime import UTC, datetime, timedelta
from uuid import uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)

ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _encode(claims: dict, expires_in: timedelta) -> str:
    to_encode = {**claims, "exp": datetime.now(UTC) + expires_in}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_access_token(user_id: int, role: str) -> str:
    return _encode(
        {"sub": str(user_id), "role": role, "type": ACCESS},
        timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(user_id: int) -> tuple[str, str, datetime]:
    """Returns (token, jti, expires_at as naive UTC)."""
    jti = str(uuid4())
    expires_in = timedelta(days=settings.refresh_token_expire_days)
    token = _encode({"sub": str(user_id), "type": REFRESH, "jti": jti}, expires_in)
    expires_at = (datetime.now(UTC) + expires_in).replace(tzinfo=None)
    return token, jti, expires_at


def _decode(token: str, expected_type: str) -> dict | None:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("type") != expected_type or not payload.get("sub"):
        return None
    return payload


def decode_access_token(token: str) -> int | None:
    payload = _decode(token, ACCESS)
    if payload is None:
        return None
    try:
        return int(payload["sub"])
    except ValueError:
        return None


def decode_refresh_token(token: str) -> tuple[int | None, str | None]:
    """Returns (user_id, jti) or (None, None)."""
    payload = _decode(token, REFRESH)
    if payload is None:
        return None, None
    try:
        return int(payload["sub"]), payload.get("jti")
    except ValueError:
        return None, None
