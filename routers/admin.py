from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import Database, get_database, get_session
from errors import ValidationFailed
from models import User
from schemas import UserOut, UserStatus, UserStatusUpdate, ok
from security import require_roles
from services import users as user_service

router = APIRouter(prefix="/admin", tags=["admin"])

require_admin = require_roles("admin")


@router.get("/users")
async def list_users(status: Optional[UserStatus] = None, search: Optional[str] = None,
                     limit: int = Query(50, ge=1, le=200), offset: int = Query(0, ge=0),
                     _: User = Depends(require_admin), session: AsyncSession = Depends(get_session)):
    users = await user_service.list_all(session, status, search, limit, offset)
    return ok({"users": [UserOut.model_validate(u).model_dump() for u in users], "count": len(users)})


@router.put("/users/{user_id}/status")
async def set_user_status(user_id: int, payload: UserStatusUpdate, admin: User = Depends(require_admin),
                          session: AsyncSession = Depends(get_session)):
    if user_id == admin.id:
        raise ValidationFailed("You cannot change your own status")
    user = await user_service.set_status(session, user_id, payload.status)
    return ok({"user": UserOut.model_validate(user).model_dump()}, f"User status updated to {payload.status}")


@router.get("/stats")
async def system_stats(_: User = Depends(require_admin), db: Database = Depends(get_database)):
    return ok({"stats": await db.stats()})
