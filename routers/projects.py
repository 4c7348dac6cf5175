from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_session
from errors import Forbidden
from models import User
from schemas import (
    InvitationCreate, InvitationOut, MemberAdd, MemberOut, MemberRoleUpdate, ProjectCreate, ProjectDetail,
    ProjectPriority, ProjectStats, ProjectStatus, ProjectSummary, ProjectUpdate, TagLink, TagOut, ok,
)
from security import get_current_user
from services import invitations as invitation_service
from services import projects as project_service
from services import tags as tag_service

router = APIRouter(prefix="/projects", tags=["projects"])


def _detail(detail: dict) -> dict:
    return ProjectDetail.model_validate(detail).model_dump()


async def _summaries(session: AsyncSession, user: User, status_filter, priority, search, limit, offset):
    projects = await project_service.list_for_user(
        session, user.id, status=status_filter, priority=priority, search=search, limit=limit, offset=offset,
    )
    return [ProjectSummary.model_validate(p).model_dump() for p in projects]


@router.get("")
async def list_projects(status_filter: Optional[ProjectStatus] = Query(None, alias="status"),
                        priority: Optional[ProjectPriority] = None, search: Optional[str] = None,
                        limit: int = Query(20, ge=1, le=100), offset: int = Query(0, ge=0),
                        user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    projects = await _summaries(session, user, status_filter, priority, search, limit, offset)
    return ok({"projects": projects, "count": len(projects)})


@router.get("/getProjects/{user_id}")
async def get_user_projects(user_id: int, status_filter: Optional[ProjectStatus] = Query(None, alias="status"),
                            priority: Optional[ProjectPriority] = None, search: Optional[str] = None,
                            limit: int = Query(20, ge=1, le=100), offset: int = Query(0, ge=0),
                            user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    if user_id != user.id:
        raise Forbidden("You can only view your own projects")
    projects = await _summaries(session, user, status_filter, priority, search, limit, offset)
    return ok({"projects": projects, "pagination": {"limit": limit, "offset": offset, "total": len(projects)}})


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(payload: ProjectCreate, user: User = Depends(get_current_user),
                         session: AsyncSession = Depends(get_session)):
    project = await project_service.create(session, user, payload.model_dump())
    detail = await project_service.get_detail(session, project.id, user)
    return ok({"project": _detail(detail)}, "Project created successfully")


@router.get("/{project_id}")
async def get_project(project_id: int, user: User = Depends(get_current_user),
                      session: AsyncSession = Depends(get_session)):
    return ok({"project": _detail(await project_service.get_detail(session, project_id, user))})


@router.put("/{project_id}")
async def update_project(project_id: int, payload: ProjectUpdate, user: User = Depends(get_current_user),
                         session: AsyncSession = Depends(get_session)):
    detail = await project_service.update(session, project_id, payload.changes(), user)
    return ok({"project": _detail(detail)}, "Project updated successfully")


@router.delete("/{project_id}")
async def delete_project(project_id: int, user: User = Depends(get_current_user),
                         session: AsyncSession = Depends(get_session)):
    await project_service.delete_project(session, project_id, user)
    return ok(message="Project deleted successfully")


# Members

@router.get("/{project_id}/members")
async def list_members(project_id: int, user: User = Depends(get_current_user),
                       session: AsyncSession = Depends(get_session)):
    members = await project_service.list_members(session, project_id, user)
    return ok({"members": [MemberOut.model_validate(m).model_dump() for m in members]})


@router.post("/{project_id}/members", status_code=status.HTTP_201_CREATED)
async def add_member(project_id: int, payload: MemberAdd, user: User = Depends(get_current_user),
                     session: AsyncSession = Depends(get_session)):
    member = await project_service.add_member(
        session, project_id, user, user_id=payload.user_id, email=payload.email, role=payload.role,
    )
    return ok({"member": MemberOut.model_validate(member).model_dump()}, "Member added successfully")


@router.put("/{project_id}/members/{user_id}")
async def update_member_role(project_id: int, user_id: int, payload: MemberRoleUpdate,
                             user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    member = await project_service.change_member_role(session, project_id, user_id, payload.role, user)
    return ok({"member": MemberOut.model_validate(member).model_dump()}, "Member role updated successfully")


@router.delete("/{project_id}/members/{user_id}")
async def remove_member(project_id: int, user_id: int, user: User = Depends(get_current_user),
                        session: AsyncSession = Depends(get_session)):
    await project_service.remove_member(session, project_id, user_id, user)
    return ok(message="Member removed successfully")


@router.post("/{project_id}/leave")
async def leave_project(project_id: int, user: User = Depends(get_current_user),
                        session: AsyncSession = Depends(get_session)):
    await project_service.leave(session, project_id, user)
    return ok(message="Left project successfully")


@router.get("/{project_id}/stats")
async def project_stats(project_id: int, user: User = Depends(get_current_user),
                        session: AsyncSession = Depends(get_session)):
    stats = await project_service.stats(session, project_id, user)
    return ok({"stats": ProjectStats.model_validate(stats).model_dump()})


# Tags

@router.get("/{project_id}/tags")
async def list_project_tags(project_id: int, user: User = Depends(get_current_user),
                            session: AsyncSession = Depends(get_session)):
    tags = await tag_service.project_tags(session, project_id, user)
    return ok({"tags": [TagOut.model_validate(t).model_dump() for t in tags]})


@router.post("/{project_id}/tags")
async def add_project_tag(project_id: int, payload: TagLink, user: User = Depends(get_current_user),
                          session: AsyncSession = Depends(get_session)):
    tag = await tag_service.add_to_project(session, project_id, payload.tag_id, user)
    return ok({"tag": TagOut.model_validate(tag).model_dump()}, "Tag added to project")


@router.delete("/{project_id}/tags/{tag_id}")
async def remove_project_tag(project_id: int, tag_id: int, user: User = Depends(get_current_user),
                             session: AsyncSession = Depends(get_session)):
    await tag_service.remove_from_project(session, project_id, tag_id, user)
    return ok(message="Tag removed from project")


# Invitations

@router.post("/{project_id}/invitations", status_code=status.HTTP_201_CREATED)
async def invite(project_id: int, payload: InvitationCreate, user: User = Depends(get_current_user),
                 session: AsyncSession = Depends(get_session)):
    invitation = await invitation_service.create(
        session, project_id, user, user_id=payload.user_id, email=payload.email,
    )
    return ok({"invitation": InvitationOut.model_validate(invitation).model_dump()}, "Invitation sent successfully")
