from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_session
from models import User
from schemas import (
    BulkTaskUpdate, TagLink, TagOut, TaskAssign, TaskCreate, TaskOut, TaskPriority, TaskStatus,
    TaskStatusUpdate, TaskUpdate, ok,
)
from security import get_current_user
from services import tags as tag_service
from services import tasks as task_service

router = APIRouter(tags=["tasks"])


def _task(task: dict) -> dict:
    return TaskOut.model_validate(task).model_dump()


def _task_list(tasks) -> dict:
    return {"tasks": [_task(t) for t in tasks], "count": len(tasks)}


@router.get("/tasks")
async def my_tasks(status_filter: Optional[TaskStatus] = Query(None, alias="status"),
                   priority: Optional[TaskPriority] = None,
                   project_id: Optional[int] = Query(None, alias="projectId"),
                   due_soon: bool = Query(False, alias="dueSoon"), search: Optional[str] = None,
                   limit: int = Query(20, ge=1, le=100), offset: int = Query(0, ge=0),
                   user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    tasks = await task_service.list_for_user(
        session, user, status=status_filter, priority=priority, project_id=project_id,
        due_soon=due_soon, search=search, limit=limit, offset=offset,
    )
    return ok(_task_list(tasks))


@router.get("/tasks/overdue")
async def overdue_tasks(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    return ok(_task_list(await task_service.overdue(session, user)))


@router.get("/tasks/due-soon")
async def tasks_due_soon(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    return ok(_task_list(await task_service.due_soon(session, user)))


@router.post("/tasks/bulk-update")
async def bulk_update(payload: BulkTaskUpdate, user: User = Depends(get_current_user),
                      session: AsyncSession = Depends(get_session)):
    updated = await task_service.bulk_update(session, payload.task_ids, payload.updates.changes(), user)
    return ok({"updatedCount": updated}, f"{updated} tasks updated successfully")


@router.get("/projects/{project_id}/tasks")
async def project_tasks(project_id: int, status_filter: Optional[TaskStatus] = Query(None, alias="status"),
                        priority: Optional[TaskPriority] = None,
                        assignee_id: Optional[int] = Query(None, alias="assigneeId"),
                        search: Optional[str] = None, limit: int = Query(50, ge=1, le=200),
                        offset: int = Query(0, ge=0), user: User = Depends(get_current_user),
                        session: AsyncSession = Depends(get_session)):
    tasks = await task_service.list_for_project(
        session, project_id, user, status=status_filter, priority=priority, assignee_id=assignee_id,
        search=search, limit=limit, offset=offset,
    )
    return ok(_task_list(tasks))


@router.post("/projects/{project_id}/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(project_id: int, payload: TaskCreate, user: User = Depends(get_current_user),
                      session: AsyncSession = Depends(get_session)):
    task = await task_service.create(session, project_id, user, payload.model_dump())
    return ok({"task": _task(task)}, "Task created successfully")


@router.get("/tasks/{task_id}")
async def get_task(task_id: int, user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    return ok({"task": _task(await task_service.get(session, task_id, user))})


@router.put("/tasks/{task_id}")
async def update_task(task_id: int, payload: TaskUpdate, user: User = Depends(get_current_user),
                      session: AsyncSession = Depends(get_session)):
    task = await task_service.update(session, task_id, payload.changes(), user)
    return ok({"task": _task(task)}, "Task updated successfully")


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: int, user: User = Depends(get_current_user),
                      session: AsyncSession = Depends(get_session)):
    await task_service.delete_task(session, task_id, user)
    return ok(message="Task deleted successfully")


@router.put("/tasks/{task_id}/status")
async def update_status(task_id: int, payload: TaskStatusUpdate, user: User = Depends(get_current_user),
                        session: AsyncSession = Depends(get_session)):
    task = await task_service.set_status(session, task_id, payload.status, user)
    return ok({"task": _task(task)}, "Task status updated successfully")


@router.put("/tasks/{task_id}/assign")
async def assign_task(task_id: int, payload: TaskAssign, user: User = Depends(get_current_user),
                      session: AsyncSession = Depends(get_session)):
    task = await task_service.assign(session, task_id, payload.assignee_id, user)
    message = "Task assigned successfully" if payload.assignee_id else "Task unassigned successfully"
    return ok({"task": _task(task)}, message)


@router.post("/tasks/{task_id}/tags")
async def add_task_tag(task_id: int, payload: TagLink, user: User = Depends(get_current_user),
                       session: AsyncSession = Depends(get_session)):
    tag = await tag_service.add_to_task(session, task_id, payload.tag_id, user)
    return ok({"tag": TagOut.model_validate(tag).model_dump()}, "Tag added to task")


@router.delete("/tasks/{task_id}/tags/{tag_id}")
async def remove_task_tag(task_id: int, tag_id: int, user: User = Depends(get_current_user),
                          session: AsyncSession = Depends(get_session)):
    await tag_service.remove_from_task(session, task_id, tag_id, user)
    return ok(message="Tag removed from task")
