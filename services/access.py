"""
Project access control.

Membership lives in ``project_memberships``; the effective role of a user is
``owner`` when they own the project, whatever their row says, otherwise the
role stored on their row. Callers that are not members get a 404 so a
project's existence is not leaked; members without the needed role get a 403.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import Forbidden, NotFound
from models import Project, ProjectMembership, Task

MANAGING_ROLES = ("owner", "manager")


async def get_membership(session: AsyncSession, project_id: int, user_id: int) -> Optional[ProjectMembership]:
    return await session.scalar(
        select(ProjectMembership).where(
            ProjectMembership.project_id == project_id,
            ProjectMembership.user_id == user_id,
        )
    )


async def is_member(session: AsyncSession, user_id: int, project_id: int) -> bool:
    return await get_membership(session, project_id, user_id) is not None


def is_owner(project: Project, user_id: int) -> bool:
    return project.owner_id == user_id


async def effective_role(session: AsyncSession, project: Project, user_id: int) -> Optional[str]:
    membership = await get_membership(session, project.id, user_id)
    if is_owner(project, user_id):
        return "owner"
    return membership.role if membership else None


async def can_manage(session: AsyncSession, user_id: int, project: Project) -> bool:
    if is_owner(project, user_id):
        return True
    membership = await get_membership(session, project.id, user_id)
    return membership is not None and membership.role in MANAGING_ROLES


async def require_project(session: AsyncSession, project_id: int, user_id: int, need: str = "member") -> Project:
    """Load a project the user may act on, or raise.

    ``need`` is one of ``member``, ``manager`` (owner or manager) or ``owner``.
    """
    project = await session.get(Project, project_id)
    if project is None:
        raise NotFound("Project not found")
    role = await effective_role(session, project, user_id)
    if role is None:
        raise NotFound("Project not found or access denied")
    if need == "owner" and role != "owner":
        raise Forbidden("Only the project owner can perform this action")
    if need == "manager" and role not in MANAGING_ROLES:
        raise Forbidden("Insufficient permissions: project owner or manager required")
    return project


async def require_task(session: AsyncSession, task_id: int, user_id: int) -> Task:
    """Load a task whose project the user belongs to; invisible tasks are a 404."""
    task = await session.get(Task, task_id)
    if task is None or not await is_member(session, user_id, task.project_id):
        raise NotFound("Task not found or access denied")
    return task
