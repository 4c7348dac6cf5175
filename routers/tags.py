from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_session
from models import User
from schemas import TagCreate, TagOut, TagType, TagUpdate, TagUsage, ok
from security import get_current_user
from services import tags as tag_service

router = APIRouter(prefix="/tags", tags=["tags"])


def _tag(tag) -> dict:
    return TagOut.model_validate(tag).model_dump()


@router.get("")
async def list_tags(tag_type: Optional[TagType] = Query(None, alias="type"), search: Optional[str] = None,
                    limit: int = Query(100, ge=1, le=500), offset: int = Query(0, ge=0),
                    _: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    tags = await tag_service.list_tags(session, tag_type, search, limit, offset)
    return ok({"tags": [TagUsage.model_validate(t).model_dump() for t in tags], "count": len(tags)})


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_tag(payload: TagCreate, _: User = Depends(get_current_user),
                     session: AsyncSession = Depends(get_session)):
    tag = await tag_service.create(session, payload.name, payload.tag_type)
    return ok({"tag": _tag(tag)}, "Tag created successfully")


@router.get("/{tag_id}")
async def get_tag(tag_id: int, _: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    return ok({"tag": _tag(await tag_service.get(session, tag_id))})


@router.put("/{tag_id}")
async def update_tag(tag_id: int, payload: TagUpdate, user: User = Depends(get_current_user),
                     session: AsyncSession = Depends(get_session)):
    tag = await tag_service.update(session, tag_id, payload.changes(), user)
    return ok({"tag": _tag(tag)}, "Tag updated successfully")


@router.delete("/{tag_id}")
async def delete_tag(tag_id: int, user: User = Depends(get_current_user),
                     session: AsyncSession = Depends(get_session)):
    await tag_service.delete_tag(session, tag_id, user)
    return ok(message="Tag deleted successfully")
