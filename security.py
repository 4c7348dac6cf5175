from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, Request
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from database import get_session
from errors import AuthenticationFailed, Forbidden
from models import User


class Security:
    """Password hashing and JWT issuing for one application instance."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.pwd_context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds
        )

    def hash_password(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify_password(self, password: str, hashed: str) -> bool:
        if not hashed:
            return False
        return self.pwd_context.verify(password, hashed)

    def create_token(self, user_id: int, token_type: str, expires_delta: timedelta) -> str:
        to_encode = {
            "sub": str(user_id),
            "type": token_type,
            "exp": datetime.now(timezone.utc) + expires_delta,
        }
        return jwt.encode(to_encode, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)

    def create_access_token(self, user_id: int) -> str:
        return self.create_token(user_id, "access", timedelta(minutes=self.settings.access_token_expire_minutes))

    def create_refresh_token(self, user_id: int) -> str:
        return self.create_token(user_id, "refresh", timedelta(days=self.settings.refresh_token_expire_days))

    def create_reset_token(self, user_id: int) -> str:
        return self.create_token(user_id, "reset", timedelta(minutes=self.settings.reset_token_expire_minutes))

    def decode_token(self, token: str, token_type: str) -> int:
        """Return the user id carried by ``token``.

        Raises ``JWTError`` (``ExpiredSignatureError`` when expired) for a bad
        signature or payload, including a token of another type.
        """
        payload = jwt.decode(token, self.settings.jwt_secret, algorithms=[self.settings.jwt_algorithm])
        if payload.get("type") != token_type:
            raise JWTError("Invalid token type")
        try:
            return int(payload.get("sub"))
        except (TypeError, ValueError):
            raise JWTError("Invalid token subject")


def get_security(request: Request) -> Security:
    return request.app.state.security


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    security: Security = Depends(get_security),
    session: AsyncSession = Depends(get_session),
) -> User:
    if not authorization:
        raise AuthenticationFailed("No token provided")
    if authorization.lower().startswith("bearer ") and len(authorization.split()) == 2:
        token = authorization.split()[1]
    else:
        raise AuthenticationFailed("Invalid authorization header")

    try:
        user_id = security.decode_token(token, "access")
    except ExpiredSignatureError:
        raise AuthenticationFailed("Token expired")
    except JWTError:
        raise AuthenticationFailed("Invalid token")

    user = await session.get(User, user_id)
    if not user:
        raise AuthenticationFailed("Invalid token - user not found")
    if user.status != "active":
        raise AuthenticationFailed("Account is inactive or suspended")
    return user


def require_roles(*allowed_roles: str):
    async def _dep(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed_roles:
            raise Forbidden("Admin privileges required")
        return user
    return _dep


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
