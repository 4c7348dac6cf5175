import logging
import os
from datetime import datetime
from typing import List, Optional

from fastapi import UploadFile
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import AuthenticationFailed, Conflict, NotFound, ValidationFailed
from models import USER_STATUSES, User, utcnow
from security import Security
from services import contains

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "email", "profile_image")
IMAGE_TYPES = {"image/png": ".png", "image/jpeg": ".jpg", "image/gif": ".gif", "image/webp": ".webp"}
MAX_IMAGE_BYTES = 5 * 1024 * 1024


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_by_id(session: AsyncSession, user_id: int) -> Optional[User]:
    return await session.get(User, user_id)


async def get_by_email(session: AsyncSession, email: str) -> Optional[User]:
    return await session.scalar(select(User).where(User.email == normalize_email(email)))


async def create(session: AsyncSession, security: Security, name: str, email: str, password: str,
                 role: str = "user") -> User:
    if await get_by_email(session, email):
        raise Conflict("User with this email already exists")
    user = User(
        name=name.strip(),
        email=normalize_email(email),
        password_hash=security.hash_password(password),
        role=role,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("User with this email already exists")
    logger.info("Registered user %s (id=%s)", user.email, user.id)
    return user


async def authenticate(session: AsyncSession, security: Security, email: str, password: str) -> User:
    user = await get_by_email(session, email)
    if not user or not security.verify_password(password, user.password_hash):
        logger.warning("Failed login for %s", email)
        raise AuthenticationFailed("Invalid email or password")
    if user.status != "active":
        raise AuthenticationFailed("Account is inactive or suspended")
    user.last_login = utcnow()
    await session.commit()
    return user


async def update(session: AsyncSession, user: User, changes: dict) -> User:
    if not changes:
        raise ValidationFailed("No valid fields to update")
    for key, value in changes.items():
        if key not in UPDATABLE_FIELDS:
            raise ValidationFailed(f"Field '{key}' cannot be updated")
        if key == "email":
            value = normalize_email(value)
            other = await get_by_email(session, value)
            if other is not None and other.id != user.id:
                raise Conflict("User with this email already exists")
        setattr(user, key, value)
    await session.commit()
    return user


async def change_password(session: AsyncSession, security: Security, user: User,
                          current_password: str, new_password: str) -> None:
    if not security.verify_password(current_password, user.password_hash):
        raise ValidationFailed("Current password is incorrect")
    user.password_hash = security.hash_password(new_password)
    await session.commit()


async def set_password(session: AsyncSession, security: Security, user_id: int, new_password: str) -> None:
    user = await get_by_id(session, user_id)
    if user is None:
        raise NotFound("User not found")
    user.password_hash = security.hash_password(new_password)
    await session.commit()


async def delete_user(session: AsyncSession, user: User) -> None:
    # memberships, assignments, invitations and owned projects go with the row
    await session.execute(delete(User).where(User.id == user.id))
    await session.commit()
    logger.info("Deleted user %s", user.id)


async def search(session: AsyncSession, term: str, limit: int = 10, offset: int = 0) -> List[User]:
    result = await session.scalars(
        select(User)
        .where(contains(term, User.name, User.email), User.status == "active")
        .order_by(User.name.asc())
        .limit(limit)
        .offset(offset)
    )
    return list(result)


async def list_all(session: AsyncSession, status: Optional[str] = None, search_term: Optional[str] = None,
                   limit: int = 50, offset: int = 0) -> List[User]:
    stmt = select(User)
    if status:
        stmt = stmt.where(User.status == status)
    if search_term:
        stmt = stmt.where(contains(search_term, User.name, User.email))
    result = await session.scalars(stmt.order_by(User.created_at.desc(), User.id.desc()).limit(limit).offset(offset))
    return list(result)


async def set_status(session: AsyncSession, user_id: int, status: str) -> User:
    if status not in USER_STATUSES:
        raise ValidationFailed("Invalid status. Must be active, inactive, or suspended")
    user = await get_by_id(session, user_id)
    if user is None:
        raise NotFound("User not found")
    user.status = status
    await session.commit()
    logger.info("User %s status set to %s", user_id, status)
    return user


async def set_profile_image(session: AsyncSession, user: User, upload: UploadFile, upload_dir: str) -> User:
    extension = IMAGE_TYPES.get(upload.content_type or "")
    if extension is None:
        raise ValidationFailed("Profile image must be a PNG, JPEG, GIF or WebP file")
    contents = await upload.read()
    if len(contents) > MAX_IMAGE_BYTES:
        raise ValidationFailed("Profile image must not exceed 5 MB")
    os.makedirs(upload_dir, exist_ok=True)
    file_name = f"user_{user.id}_{int(datetime.now().timestamp() * 1000)}{extension}"
    with open(os.path.join(upload_dir, file_name), "wb") as f:
        f.write(contents)
    user.profile_image = f"/uploads/{file_name}"
    await session.commit()
    return user


async def ensure_admin(session: AsyncSession, security: Security, email: str, password: str) -> User:
    user = await get_by_email(session, email)
    if user is None:
        user = await create(session, security, "Administrator", email, password, role="admin")
        logger.info("Created admin user %s", user.email)
    elif user.role != "admin":
        user.role = "admin"
        await session.commit()
        logger.info("Promoted %s to admin", user.email)
    return user
