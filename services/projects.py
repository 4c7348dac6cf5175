import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from errors import Conflict, Forbidden, NotFound, ValidationFailed
from models import Project, ProjectMembership, Task, TaskAssignment, User
from schemas import ProjectOut
from services import contains, tags as tag_service
from services.access import effective_role, get_membership, is_owner, require_project

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "name", "description", "start_date", "deadline", "priority", "status", "profile_image", "manager_id",
)
ROLE_ORDER = case(
    (ProjectMembership.role == "owner", 1),
    (ProjectMembership.role == "manager", 2),
    else_=3,
)


def _as_dict(project: Project) -> dict:
    return ProjectOut.model_validate(project).model_dump()


async def _count(session: AsyncSession, stmt) -> int:
    return await session.scalar(stmt) or 0


async def create(session: AsyncSession, caller: User, data: dict) -> Project:
    owner_id = data.pop("owner_id", None) or caller.id
    manager_id = data.pop("manager_id", None) or owner_id
    if owner_id != caller.id:
        if await session.get(User, owner_id) is None:
            raise ValidationFailed("Owner does not exist")
        raise Forbidden("Projects can only be created with yourself as the owner")
    if manager_id != owner_id and await session.get(User, manager_id) is None:
        raise ValidationFailed("Manager does not exist")

    project = Project(owner_id=owner_id, manager_id=manager_id, **data)
    session.add(project)
    await session.flush()
    session.add(ProjectMembership(project_id=project.id, user_id=owner_id, role="owner"))
    if manager_id != owner_id:
        session.add(ProjectMembership(project_id=project.id, user_id=manager_id, role="manager"))
    await session.commit()
    logger.info("User %s created project %s", caller.id, project.id)
    return project


async def get_detail(session: AsyncSession, project_id: int, caller: User) -> dict:
    project = await require_project(session, project_id, caller.id)
    owner = await session.get(User, project.owner_id)
    manager = await session.get(User, project.manager_id) if project.manager_id else None
    detail = _as_dict(project)
    detail.update(
        owner_name=owner.name if owner else None,
        manager_name=manager.name if manager else None,
        member_count=await _count(session, select(func.count(ProjectMembership.id)).where(
            ProjectMembership.project_id == project.id)),
        task_count=await _count(session, select(func.count(Task.id)).where(Task.project_id == project.id)),
        completed_tasks=await _count(session, select(func.count(Task.id)).where(
            Task.project_id == project.id, Task.status == "completed")),
        user_role=await effective_role(session, project, caller.id),
        tags=[tag_service.as_dict(tag) for tag in await tag_service.for_project(session, project.id)],
    )
    return detail


async def list_for_user(session: AsyncSession, user_id: int, status: Optional[str] = None,
                        priority: Optional[str] = None, search: Optional[str] = None,
                        limit: int = 20, offset: int = 0) -> List[dict]:
    others = aliased(ProjectMembership)
    member_count = (
        select(func.count(others.id)).where(others.project_id == Project.id).correlate(Project).scalar_subquery()
    )
    task_count = select(func.count(Task.id)).where(Task.project_id == Project.id).correlate(Project).scalar_subquery()
    stmt = (
        select(Project, ProjectMembership.role, User.name, member_count, task_count)
        .join(ProjectMembership, ProjectMembership.project_id == Project.id)
        .join(User, User.id == Project.owner_id)
        .where(ProjectMembership.user_id == user_id)
    )
    if status:
        stmt = stmt.where(Project.status == status)
    if priority:
        stmt = stmt.where(Project.priority == priority)
    if search:
        stmt = stmt.where(contains(search, Project.name, Project.description))
    stmt = stmt.order_by(Project.updated_at.desc(), Project.id.desc()).limit(limit).offset(offset)

    projects = []
    for project, role, owner_name, members, tasks in (await session.execute(stmt)).all():
        row = _as_dict(project)
        row.update(member_role="owner" if project.owner_id == user_id else role,
                   owner_name=owner_name, member_count=members or 0, task_count=tasks or 0)
        projects.append(row)
    return projects


async def _reassign_manager(session: AsyncSession, project: Project, new_manager_id: Optional[int]) -> None:
    new_manager_id = new_manager_id or project.owner_id
    if new_manager_id == project.manager_id:
        return
    if new_manager_id != project.owner_id:
        membership = await get_membership(session, project.id, new_manager_id)
        if membership is None:
            raise ValidationFailed("The new manager must already be a project member")
        membership.role = "manager"
    previous = project.manager_id
    if previous and previous != project.owner_id:
        old = await get_membership(session, project.id, previous)
        if old is not None and old.role == "manager":
            old.role = "member"
    project.manager_id = new_manager_id


async def update(session: AsyncSession, project_id: int, changes: dict, caller: User) -> dict:
    project = await require_project(session, project_id, caller.id, need="manager")
    if not changes:
        raise ValidationFailed("No valid fields to update")
    for key in changes:
        if key not in UPDATABLE_FIELDS:
            raise ValidationFailed(f"Field '{key}' cannot be updated")
    if "manager_id" in changes:
        await _reassign_manager(session, project, changes.pop("manager_id"))
    for key, value in changes.items():
        setattr(project, key, value)
    await session.commit()
    return await get_detail(session, project_id, caller)


async def delete_project(session: AsyncSession, project_id: int, caller: User) -> None:
    project = await require_project(session, project_id, caller.id, need="owner")
    await session.execute(delete(Project).where(Project.id == project.id))
    await session.commit()
    logger.info("User %s deleted project %s", caller.id, project_id)


async def list_members(session: AsyncSession, project_id: int, caller: User) -> List[dict]:
    project = await require_project(session, project_id, caller.id)
    rows = await session.execute(
        select(User, ProjectMembership)
        .join(ProjectMembership, ProjectMembership.user_id == User.id)
        .where(ProjectMembership.project_id == project.id)
        .order_by(ROLE_ORDER, User.name.asc())
    )
    return [_member_dict(user, membership) for user, membership in rows.all()]


def _member_dict(user: User, membership: ProjectMembership) -> dict:
    return {
        "user_id": user.id,
        "name": user.name,
        "email": user.email,
        "profile_image": user.profile_image,
        "role": membership.role,
        "joined_at": membership.created_at,
    }


async def add_member(session: AsyncSession, project_id: int, caller: User, user_id: Optional[int] = None,
                     email: Optional[str] = None, role: str = "member") -> dict:
    project = await require_project(session, project_id, caller.id, need="manager")
    if user_id is not None:
        user = await session.get(User, user_id)
    else:
        user = await session.scalar(select(User).where(User.email == email.strip().lower()))
    if user is None or user.status != "active":
        raise NotFound("User not found or inactive")
    if await get_membership(session, project.id, user.id) is not None:
        raise Conflict("User is already a project member")
    membership = ProjectMembership(project_id=project.id, user_id=user.id, role=role)
    session.add(membership)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("User is already a project member")
    logger.info("User %s added %s to project %s as %s", caller.id, user.id, project.id, role)
    return _member_dict(user, membership)


async def _target_membership(session: AsyncSession, project: Project, user_id: int, action: str) -> ProjectMembership:
    if is_owner(project, user_id):
        raise ValidationFailed(f"Cannot {action} project owner")
    membership = await get_membership(session, project.id, user_id)
    if membership is None:
        raise NotFound("User is not a member of this project")
    return membership


async def change_member_role(session: AsyncSession, project_id: int, user_id: int, role: str,
                             caller: User) -> dict:
    project = await require_project(session, project_id, caller.id, need="manager")
    if role not in ("member", "manager"):
        raise ValidationFailed("Invalid role")
    membership = await _target_membership(session, project, user_id, "change role of")
    membership.role = role
    if role == "member" and project.manager_id == user_id:
        project.manager_id = project.owner_id
    await session.commit()
    user = await session.get(User, user_id)
    return _member_dict(user, membership)


async def _drop_member(session: AsyncSession, project: Project, membership: ProjectMembership) -> None:
    project_tasks = select(Task.id).where(Task.project_id == project.id)
    await session.execute(
        delete(TaskAssignment)
        .where(TaskAssignment.user_id == membership.user_id, TaskAssignment.task_id.in_(project_tasks))
        .execution_options(synchronize_session=False)
    )
    if project.manager_id == membership.user_id:
        project.manager_id = project.owner_id
    await session.delete(membership)
    await session.commit()


async def remove_member(session: AsyncSession, project_id: int, user_id: int, caller: User) -> None:
    project = await require_project(session, project_id, caller.id, need="manager")
    membership = await _target_membership(session, project, user_id, "remove")
    await _drop_member(session, project, membership)
    logger.info("User %s removed %s from project %s", caller.id, user_id, project_id)


async def leave(session: AsyncSession, project_id: int, caller: User) -> None:
    project = await require_project(session, project_id, caller.id)
    if is_owner(project, caller.id):
        raise ValidationFailed("Project owner cannot leave the project. Transfer ownership or delete the project.")
    membership = await get_membership(session, project.id, caller.id)
    await _drop_member(session, project, membership)
    logger.info("User %s left project %s", caller.id, project_id)


async def stats(session: AsyncSession, project_id: int, caller: User) -> dict:
    project = await require_project(session, project_id, caller.id)
    by_status = dict((await session.execute(
        select(Task.status, func.count(Task.id)).where(Task.project_id == project.id).group_by(Task.status)
    )).all())
    overdue = await _count(session, select(func.count(Task.id)).where(
        Task.project_id == project.id,
        Task.due_date < date.today(),
        Task.status.not_in(("completed", "cancelled")),
    ))
    return {
        "member_count": await _count(session, select(func.count(ProjectMembership.id)).where(
            ProjectMembership.project_id == project.id)),
        "task_count": sum(by_status.values()),
        "completed_tasks": by_status.get("completed", 0),
        "overdue_tasks": overdue,
        "tasks_by_status": {status: by_status.get(status, 0)
                            for status in ("pending", "in_progress", "completed", "cancelled")},
    }
