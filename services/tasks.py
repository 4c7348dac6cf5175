"""
Tasks.

Status values are ``pending``, ``in_progress``, ``completed`` and
``cancelled``. Any member of the task's project may move a task to any of
them; ``completed_at`` is stamped when a task becomes completed and cleared
when it leaves that status.
"""

import logging
from datetime import date, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import Forbidden, ValidationFailed
from models import Project, ProjectMembership, TASK_STATUSES, Task, TaskAssignment, TaskTagLink, User, utcnow
from services import contains, tags as tag_service
from services.access import is_member, require_project, require_task

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "due_date", "priority", "status", "assignee_id")
BULK_FIELDS = ("status", "priority", "assignee_id")
OPEN_STATUSES = ("pending", "in_progress")
DUE_SOON_DAYS = 7


def apply_status(task: Task, status: str) -> None:
    if status not in TASK_STATUSES:
        raise ValidationFailed("Invalid status")
    if status == "completed":
        if task.status != "completed" or task.completed_at is None:
            task.completed_at = utcnow()
    else:
        task.completed_at = None
    task.status = status


def _task_select():
    return (
        select(Task, Project.name, User.id, User.name, User.email)
        .join(Project, Project.id == Task.project_id)
        .outerjoin(TaskAssignment, TaskAssignment.task_id == Task.id)
        .outerjoin(User, User.id == TaskAssignment.user_id)
    )


def _member_projects(user_id: int):
    return select(ProjectMembership.project_id).where(ProjectMembership.user_id == user_id)


async def _render(session: AsyncSession, stmt) -> List[dict]:
    rows = (await session.execute(stmt)).all()
    tags = await tag_service.for_tasks(session, [row[0].id for row in rows])
    tasks = []
    for task, project_name, assignee_id, assignee_name, assignee_email in rows:
        tasks.append({
            "id": task.id,
            "project_id": task.project_id,
            "project_name": project_name,
            "created_by": task.created_by,
            "title": task.title,
            "description": task.description,
            "due_date": task.due_date,
            "priority": task.priority,
            "status": task.status,
            "completed_at": task.completed_at,
            "created_at": task.created_at,
            "updated_at": task.updated_at,
            "assignee_id": assignee_id,
            "assignee_name": assignee_name,
            "assignee_email": assignee_email,
            "tags": [tag_service.as_dict(tag) for tag in tags.get(task.id, [])],
        })
    return tasks


async def _set_assignee(session: AsyncSession, task: Task, assignee_id: Optional[int]) -> None:
    current = await session.scalar(select(TaskAssignment).where(TaskAssignment.task_id == task.id))
    if assignee_id is None:
        if current is not None:
            await session.delete(current)
        return
    if not await is_member(session, assignee_id, task.project_id):
        raise ValidationFailed("Assignee is not a project member")
    if current is None:
        session.add(TaskAssignment(task_id=task.id, user_id=assignee_id))
    elif current.user_id != assignee_id:
        current.user_id = assignee_id
        current.assigned_at = utcnow()


async def get(session: AsyncSession, task_id: int, caller: User) -> dict:
    task = await require_task(session, task_id, caller.id)
    return (await _render(session, _task_select().where(Task.id == task.id)))[0]


async def create(session: AsyncSession, project_id: int, caller: User, data: dict) -> dict:
    project = await require_project(session, project_id, caller.id)
    tag_names = data.pop("tags", None) or []
    assignee_id = data.pop("assignee_id", None)
    status = data.pop("status", "pending")

    task = Task(project_id=project.id, created_by=caller.id, **data)
    apply_status(task, status)
    session.add(task)
    await session.flush()
    if assignee_id is not None:
        await _set_assignee(session, task, assignee_id)
    for tag in await tag_service.resolve_task_tags(session, tag_names):
        session.add(TaskTagLink(task_id=task.id, tag_id=tag.id))
    await session.commit()
    logger.info("User %s created task %s in project %s", caller.id, task.id, project.id)
    return await get(session, task.id, caller)


async def update(session: AsyncSession, task_id: int, changes: dict, caller: User) -> dict:
    task = await require_task(session, task_id, caller.id)
    if not changes:
        raise ValidationFailed("No valid fields to update")
    for key in changes:
        if key not in UPDATABLE_FIELDS:
            raise ValidationFailed(f"Field '{key}' cannot be updated")
    for key, value in changes.items():
        if key == "assignee_id":
            await _set_assignee(session, task, value)
        elif key == "status":
            apply_status(task, value)
        else:
            setattr(task, key, value)
    task.updated_at = utcnow()
    await session.commit()
    return await get(session, task.id, caller)


async def set_status(session: AsyncSession, task_id: int, status: str, caller: User) -> dict:
    return await update(session, task_id, {"status": status}, caller)


async def assign(session: AsyncSession, task_id: int, assignee_id: Optional[int], caller: User) -> dict:
    return await update(session, task_id, {"assignee_id": assignee_id}, caller)


async def delete_task(session: AsyncSession, task_id: int, caller: User) -> None:
    task = await require_task(session, task_id, caller.id)
    await session.execute(delete(Task).where(Task.id == task.id))
    await session.commit()
    logger.info("User %s deleted task %s", caller.id, task_id)


async def bulk_update(session: AsyncSession, task_ids: Iterable[int], changes: dict, caller: User) -> int:
    """Apply the same changes to several tasks in one transaction."""
    task_ids = list(dict.fromkeys(task_ids))
    if not task_ids:
        raise ValidationFailed("Task IDs array is required")
    if not changes:
        raise ValidationFailed("No valid fields to update")
    for key in changes:
        if key not in BULK_FIELDS:
            raise ValidationFailed(f"Field '{key}' cannot be bulk updated")

    tasks = list(await session.scalars(
        select(Task).where(Task.id.in_(task_ids), Task.project_id.in_(_member_projects(caller.id)))
    ))
    if len(tasks) != len(task_ids):
        raise Forbidden("Access denied to one or more tasks")

    for task in tasks:
        if "assignee_id" in changes:
            await _set_assignee(session, task, changes["assignee_id"])
        if "status" in changes:
            apply_status(task, changes["status"])
        if "priority" in changes:
            task.priority = changes["priority"]
        task.updated_at = utcnow()
    await session.commit()
    logger.info("User %s bulk updated %d tasks", caller.id, len(tasks))
    return len(tasks)


async def list_for_project(session: AsyncSession, project_id: int, caller: User, status: Optional[str] = None,
                           priority: Optional[str] = None, assignee_id: Optional[int] = None,
                           search: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[dict]:
    project = await require_project(session, project_id, caller.id)
    stmt = _task_select().where(Task.project_id == project.id)
    if status:
        stmt = stmt.where(Task.status == status)
    if priority:
        stmt = stmt.where(Task.priority == priority)
    if assignee_id:
        stmt = stmt.where(TaskAssignment.user_id == assignee_id)
    if search:
        stmt = stmt.where(contains(search, Task.title, Task.description))
    stmt = stmt.order_by(Task.updated_at.desc(), Task.id.desc()).limit(limit).offset(offset)
    return await _render(session, stmt)


async def list_for_user(session: AsyncSession, caller: User, status: Optional[str] = None,
                        priority: Optional[str] = None, project_id: Optional[int] = None,
                        due_soon: bool = False, search: Optional[str] = None,
                        limit: int = 20, offset: int = 0) -> List[dict]:
    stmt = _task_select().where(
        Task.project_id.in_(_member_projects(caller.id)),
        or_(TaskAssignment.user_id == caller.id, Task.created_by == caller.id),
    )
    if status:
        stmt = stmt.where(Task.status == status)
    if priority:
        stmt = stmt.where(Task.priority == priority)
    if project_id:
        stmt = stmt.where(Task.project_id == project_id)
    if due_soon:
        stmt = stmt.where(Task.due_date <= date.today() + timedelta(days=DUE_SOON_DAYS))
    if search:
        stmt = stmt.where(contains(search, Task.title, Task.description))
    stmt = stmt.order_by(Task.updated_at.desc(), Task.id.desc()).limit(limit).offset(offset)
    return await _render(session, stmt)


async def overdue(session: AsyncSession, caller: User) -> List[dict]:
    stmt = (
        _task_select()
        .where(Task.project_id.in_(_member_projects(caller.id)),
               Task.due_date < date.today(),
               Task.status.in_(OPEN_STATUSES))
        .order_by(Task.due_date.asc())
    )
    return await _render(session, stmt)


async def due_soon(session: AsyncSession, caller: User) -> List[dict]:
    today = date.today()
    stmt = (
        _task_select()
        .where(Task.project_id.in_(_member_projects(caller.id)),
               Task.due_date.between(today, today + timedelta(days=DUE_SOON_DAYS)),
               Task.status.in_(OPEN_STATUSES))
        .order_by(Task.due_date.asc())
    )
    return await _render(session, stmt)
