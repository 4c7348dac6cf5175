"""
Project invitations.

An invitation is ``pending`` until its recipient answers it; ``accepted``
and ``declined`` are final. Only the sender and the recipient can see an
invitation, everyone else gets a 404.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from errors import Conflict, NotFound, ValidationFailed
from mailer import send_email
from models import Invitation, Project, ProjectMembership, User, utcnow
from services.access import is_member, require_project

logger = logging.getLogger(__name__)

BOXES = ("received", "sent", "all")
RESPONSES = ("accepted", "declined")

_sender = aliased(User)
_recipient = aliased(User)


def _invitation_select():
    return (
        select(Invitation, _sender.name, _sender.email, _recipient.name, _recipient.email, Project.name)
        .join(_sender, _sender.id == Invitation.sender_id)
        .join(_recipient, _recipient.id == Invitation.recipient_id)
        .join(Project, Project.id == Invitation.project_id)
    )


async def _render(session: AsyncSession, stmt) -> List[dict]:
    invitations = []
    for invitation, sender_name, sender_email, recipient_name, recipient_email, project_name in (
        await session.execute(stmt)
    ).all():
        invitations.append({
            "id": invitation.id,
            "sender_id": invitation.sender_id,
            "recipient_id": invitation.recipient_id,
            "project_id": invitation.project_id,
            "status": invitation.status,
            "sent_at": invitation.sent_at,
            "responded_at": invitation.responded_at,
            "sender_name": sender_name,
            "sender_email": sender_email,
            "recipient_name": recipient_name,
            "recipient_email": recipient_email,
            "project_name": project_name,
        })
    return invitations


async def _visible(session: AsyncSession, invitation_id: int, caller: User) -> Invitation:
    invitation = await session.get(Invitation, invitation_id)
    if invitation is None or caller.id not in (invitation.sender_id, invitation.recipient_id):
        raise NotFound("Invitation not found")
    return invitation


async def create(session: AsyncSession, project_id: int, caller: User, user_id: Optional[int] = None,
                 email: Optional[str] = None) -> dict:
    project = await require_project(session, project_id, caller.id, need="manager")
    if user_id is not None:
        recipient = await session.get(User, user_id)
    else:
        recipient = await session.scalar(select(User).where(User.email == email.strip().lower()))
    if recipient is None or recipient.status != "active":
        raise NotFound("User not found or inactive")
    if recipient.id == caller.id:
        raise ValidationFailed("You cannot invite yourself")
    if await is_member(session, recipient.id, project.id):
        raise ValidationFailed("User is already a project member")
    pending = await session.scalar(
        select(Invitation.id).where(
            Invitation.project_id == project.id,
            Invitation.recipient_id == recipient.id,
            Invitation.status == "pending",
        )
    )
    if pending is not None:
        raise ValidationFailed("A pending invitation already exists for this user")

    invitation = Invitation(sender_id=caller.id, recipient_id=recipient.id, project_id=project.id)
    session.add(invitation)
    await session.commit()
    logger.info("User %s invited %s to project %s", caller.id, recipient.id, project.id)
    send_email(recipient.email, "Project invitation", f"{caller.name} invited you to join '{project.name}'")
    return await get(session, invitation.id, caller)


async def get(session: AsyncSession, invitation_id: int, caller: User) -> dict:
    invitation = await _visible(session, invitation_id, caller)
    return (await _render(session, _invitation_select().where(Invitation.id == invitation.id)))[0]


async def list_for_user(session: AsyncSession, caller: User, box: str = "received", status: Optional[str] = None,
                        limit: int = 20, offset: int = 0) -> List[dict]:
    if box not in BOXES:
        raise ValidationFailed('Invalid type. Must be "received", "sent" or "all"')
    stmt = _invitation_select()
    if box == "received":
        stmt = stmt.where(Invitation.recipient_id == caller.id)
    elif box == "sent":
        stmt = stmt.where(Invitation.sender_id == caller.id)
    else:
        stmt = stmt.where((Invitation.recipient_id == caller.id) | (Invitation.sender_id == caller.id))
    if status:
        stmt = stmt.where(Invitation.status == status)
    stmt = stmt.order_by(Invitation.sent_at.desc(), Invitation.id.desc()).limit(limit).offset(offset)
    return await _render(session, stmt)


async def respond(session: AsyncSession, invitation_id: int, caller: User, response: str) -> dict:
    """Accept or decline an invitation; accepting also adds the caller to the project."""
    if response not in RESPONSES:
        raise ValidationFailed('Invalid response. Must be "accepted" or "declined"')
    invitation = await session.get(Invitation, invitation_id)
    if invitation is None or invitation.recipient_id != caller.id:
        raise NotFound("Invitation not found")
    if invitation.status != "pending":
        raise Conflict("Invitation has already been responded to")

    result = await session.execute(
        update(Invitation)
        .where(Invitation.id == invitation.id, Invitation.status == "pending")
        .values(status=response, responded_at=utcnow())
    )
    if result.rowcount != 1:
        await session.rollback()
        raise Conflict("Invitation has already been responded to")
    if response == "accepted" and not await is_member(session, caller.id, invitation.project_id):
        session.add(ProjectMembership(project_id=invitation.project_id, user_id=caller.id, role="member"))
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("Invitation has already been responded to")
    logger.info("User %s %s invitation %s", caller.id, response, invitation.id)
    return await get(session, invitation.id, caller)


async def delete_invitation(session: AsyncSession, invitation_id: int, caller: User) -> None:
    invitation = await session.get(Invitation, invitation_id)
    if invitation is None or invitation.sender_id != caller.id:
        raise NotFound("Invitation not found")
    await session.delete(invitation)
    await session.commit()


async def stats(session: AsyncSession, caller: User) -> dict:
    async def count(*criteria) -> int:
        return await session.scalar(select(func.count(Invitation.id)).where(*criteria)) or 0

    return {
        "sent_count": await count(Invitation.sender_id == caller.id),
        "received_count": await count(Invitation.recipient_id == caller.id),
        "pending_sent": await count(Invitation.sender_id == caller.id, Invitation.status == "pending"),
        "pending_received": await count(Invitation.recipient_id == caller.id, Invitation.status == "pending"),
    }
