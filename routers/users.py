from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from database import get_session
from errors import NotFound, ValidationFailed
from models import User
from schemas import ChangePasswordRequest, UserOut, UserPublic, UserUpdate, ok
from security import Security, get_current_user, get_security, get_settings
from services import users as user_service

router = APIRouter(prefix="/users", tags=["users"])


def _profile(user: User) -> dict:
    return UserOut.model_validate(user).model_dump()


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return ok({"user": _profile(user)})


@router.put("/me")
async def update_me(payload: UserUpdate, user: User = Depends(get_current_user),
                    session: AsyncSession = Depends(get_session)):
    user = await user_service.update(session, user, payload.changes())
    return ok({"user": _profile(user)}, "Profile updated successfully")


@router.delete("/me")
async def delete_me(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    await user_service.delete_user(session, user)
    return ok(message="Account deleted successfully")


@router.post("/me/avatar")
async def upload_avatar(file: UploadFile = File(...), user: User = Depends(get_current_user),
                        session: AsyncSession = Depends(get_session),
                        settings: Settings = Depends(get_settings)):
    user = await user_service.set_profile_image(session, user, file, settings.upload_dir)
    return ok({"user": _profile(user)}, "Profile image updated")


@router.get("/search")
async def search(q: Optional[str] = Query(None), limit: int = Query(10, ge=1, le=100),
                 offset: int = Query(0, ge=0), _: User = Depends(get_current_user),
                 session: AsyncSession = Depends(get_session)):
    if not q or not q.strip():
        raise ValidationFailed("Search term is required")
    users = await user_service.search(session, q.strip(), limit, offset)
    public = [UserPublic.model_validate(u).model_dump() for u in users]
    return ok({"users": public, "count": len(public)})


@router.put("/change-password")
async def change_password(payload: ChangePasswordRequest, user: User = Depends(get_current_user),
                          session: AsyncSession = Depends(get_session),
                          security: Security = Depends(get_security)):
    await user_service.change_password(session, security, user, payload.current_password, payload.new_password)
    return ok(message="Password changed successfully")


@router.get("/{user_id}")
async def get_user(user_id: int, _: User = Depends(get_current_user),
                   session: AsyncSession = Depends(get_session)):
    user = await user_service.get_by_id(session, user_id)
    if user is None or user.status != "active":
        raise NotFound("User not found")
    return ok({"user": UserPublic.model_validate(user).model_dump()})
