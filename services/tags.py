from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import Conflict, Forbidden, NotFound, ValidationFailed
from models import TAG_TYPES, Project, ProjectTagLink, Tag, Task, TaskTagLink, User
from services import contains
from services.access import can_manage, require_project, require_task

UPDATABLE_FIELDS = ("name",)


def as_dict(tag: Tag) -> dict:
    return {"id": tag.id, "name": tag.name, "tag_type": tag.tag_type}


def _check_type(tag_type: str) -> None:
    if tag_type not in TAG_TYPES:
        raise ValidationFailed('Invalid tag type. Must be "project" or "task"')


async def find_by_name_and_type(session: AsyncSession, name: str, tag_type: str) -> Optional[Tag]:
    return await session.scalar(select(Tag).where(Tag.name == name, Tag.tag_type == tag_type))


async def create(session: AsyncSession, name: str, tag_type: str) -> Tag:
    _check_type(tag_type)
    name = name.strip()
    if await find_by_name_and_type(session, name, tag_type):
        raise Conflict(f"A {tag_type} tag named '{name}' already exists")
    tag = Tag(name=name, tag_type=tag_type)
    session.add(tag)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict(f"A {tag_type} tag named '{name}' already exists")
    return tag


async def get(session: AsyncSession, tag_id: int) -> Tag:
    tag = await session.get(Tag, tag_id)
    if tag is None:
        raise NotFound("Tag not found")
    return tag


async def list_tags(session: AsyncSession, tag_type: Optional[str] = None, search: Optional[str] = None,
                    limit: int = 100, offset: int = 0) -> List[dict]:
    project_usage = (
        select(func.count()).select_from(ProjectTagLink).where(ProjectTagLink.tag_id == Tag.id)
        .correlate(Tag).scalar_subquery()
    )
    task_usage = (
        select(func.count()).select_from(TaskTagLink).where(TaskTagLink.tag_id == Tag.id)
        .correlate(Tag).scalar_subquery()
    )
    stmt = select(Tag, project_usage, task_usage)
    if tag_type:
        _check_type(tag_type)
        stmt = stmt.where(Tag.tag_type == tag_type)
    if search:
        stmt = stmt.where(contains(search, Tag.name))
    stmt = stmt.order_by(Tag.tag_type.asc(), Tag.name.asc()).limit(limit).offset(offset)
    return [
        {"id": tag.id, "name": tag.name, "tag_type": tag.tag_type,
         "project_usage_count": projects or 0, "task_usage_count": tasks or 0}
        for tag, projects, tasks in (await session.execute(stmt)).all()
    ]


async def linked_project_ids(session: AsyncSession, tag_id: int) -> set:
    """Projects using the tag directly or through one of their tasks."""
    project_ids = set(await session.scalars(
        select(ProjectTagLink.project_id).where(ProjectTagLink.tag_id == tag_id)
    ))
    project_ids.update(await session.scalars(
        select(Task.project_id).join(TaskTagLink, TaskTagLink.task_id == Task.id).where(TaskTagLink.tag_id == tag_id)
    ))
    return project_ids


async def require_control(session: AsyncSession, tag: Tag, caller: User) -> None:
    """Renaming or deleting a tag is limited to admins and to managers of every project using it."""
    if caller.role == "admin":
        return
    for project_id in await linked_project_ids(session, tag.id):
        project = await session.get(Project, project_id)
        if not await can_manage(session, caller.id, project):
            raise Forbidden("Tag is used by projects you do not manage")


async def update(session: AsyncSession, tag_id: int, changes: dict, caller: User) -> Tag:
    tag = await get(session, tag_id)
    await require_control(session, tag, caller)
    if not changes:
        raise ValidationFailed("No valid fields to update")
    for key in changes:
        if key not in UPDATABLE_FIELDS:
            raise ValidationFailed(f"Field '{key}' cannot be updated")
    name = changes["name"].strip()
    other = await find_by_name_and_type(session, name, tag.tag_type)
    if other is not None and other.id != tag.id:
        raise Conflict(f"A {tag.tag_type} tag named '{name}' already exists")
    tag.name = name
    await session.commit()
    return tag


async def delete_tag(session: AsyncSession, tag_id: int, caller: User) -> None:
    tag = await get(session, tag_id)
    await require_control(session, tag, caller)
    await session.execute(delete(Tag).where(Tag.id == tag.id))
    await session.commit()


async def insert_link(session: AsyncSession, model, **key) -> None:
    """Link a tag; linking twice is a no-op, including when a concurrent request won the insert."""
    if await session.get(model, key) is not None:
        return
    session.add(model(**key))
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        if await session.get(model, key) is None:
            raise Conflict("Tag link could not be created")


async def add_to_project(session: AsyncSession, project_id: int, tag_id: int, caller: User) -> Tag:
    project = await require_project(session, project_id, caller.id, need="manager")
    tag = await session.get(Tag, tag_id)
    if tag is None or tag.tag_type != "project":
        raise ValidationFailed("Tag not found or not a project tag")
    await insert_link(session, ProjectTagLink, project_id=project.id, tag_id=tag_id)
    return await get(session, tag_id)


async def remove_from_project(session: AsyncSession, project_id: int, tag_id: int, caller: User) -> None:
    project = await require_project(session, project_id, caller.id, need="manager")
    link = await session.get(ProjectTagLink, (project.id, tag_id))
    if link is None:
        raise NotFound("Tag is not linked to this project")
    await session.delete(link)
    await session.commit()


async def add_to_task(session: AsyncSession, task_id: int, tag_id: int, caller: User) -> Tag:
    task = await require_task(session, task_id, caller.id)
    tag = await session.get(Tag, tag_id)
    if tag is None or tag.tag_type != "task":
        raise ValidationFailed("Tag not found or not a task tag")
    await insert_link(session, TaskTagLink, task_id=task.id, tag_id=tag_id)
    return await get(session, tag_id)


async def remove_from_task(session: AsyncSession, task_id: int, tag_id: int, caller: User) -> None:
    task = await require_task(session, task_id, caller.id)
    link = await session.get(TaskTagLink, (task.id, tag_id))
    if link is None:
        raise NotFound("Tag is not linked to this task")
    await session.delete(link)
    await session.commit()


async def for_project(session: AsyncSession, project_id: int) -> List[Tag]:
    result = await session.scalars(
        select(Tag).join(ProjectTagLink, ProjectTagLink.tag_id == Tag.id)
        .where(ProjectTagLink.project_id == project_id).order_by(Tag.name.asc())
    )
    return list(result)


async def for_tasks(session: AsyncSession, task_ids: Iterable[int]) -> Dict[int, List[Tag]]:
    task_ids = list(task_ids)
    tags: Dict[int, List[Tag]] = {task_id: [] for task_id in task_ids}
    if not task_ids:
        return tags
    rows = await session.execute(
        select(TaskTagLink.task_id, Tag).join(Tag, Tag.id == TaskTagLink.tag_id)
        .where(TaskTagLink.task_id.in_(task_ids)).order_by(Tag.name.asc())
    )
    for task_id, tag in rows.all():
        tags[task_id].append(tag)
    return tags


async def resolve_task_tags(session: AsyncSession, names: Iterable[str]) -> List[Tag]:
    """Find task tags by name, creating the missing ones (flushed, not committed)."""
    resolved = []
    for name in names:
        tag = await find_by_name_and_type(session, name, "task")
        if tag is None:
            tag = Tag(name=name, tag_type="task")
            session.add(tag)
            await session.flush()
        resolved.append(tag)
    return resolved


async def project_tags(session: AsyncSession, project_id: int, caller: User) -> List[Tag]:
    project = await require_project(session, project_id, caller.id)
    return await for_project(session, project.id)
