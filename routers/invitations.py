from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_session
from models import User
from schemas import InvitationOut, InvitationRespond, ok
from security import get_current_user
from services import invitations as invitation_service

router = APIRouter(prefix="/invitations", tags=["invitations"])


def _invitation(invitation: dict) -> dict:
    return InvitationOut.model_validate(invitation).model_dump()


@router.get("")
async def list_invitations(box: Literal["received", "sent", "all"] = Query("received", alias="type"),
                           status: Optional[Literal["pending", "accepted", "declined"]] = None,
                           limit: int = Query(20, ge=1, le=100), offset: int = Query(0, ge=0),
                           user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    invitations = await invitation_service.list_for_user(session, user, box, status, limit, offset)
    return ok({"invitations": [_invitation(i) for i in invitations], "count": len(invitations)})


@router.get("/stats")
async def invitation_stats(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    return ok({"stats": await invitation_service.stats(session, user)})


@router.get("/{invitation_id}")
async def get_invitation(invitation_id: int, user: User = Depends(get_current_user),
                         session: AsyncSession = Depends(get_session)):
    return ok({"invitation": _invitation(await invitation_service.get(session, invitation_id, user))})


@router.post("/{invitation_id}/respond")
async def respond(invitation_id: int, payload: InvitationRespond, user: User = Depends(get_current_user),
                  session: AsyncSession = Depends(get_session)):
    invitation = await invitation_service.respond(session, invitation_id, user, payload.response)
    return ok({"invitation": _invitation(invitation)}, f"Invitation {payload.response} successfully")


@router.delete("/{invitation_id}")
async def delete_invitation(invitation_id: int, user: User = Depends(get_current_user),
                            session: AsyncSession = Depends(get_session)):
    await invitation_service.delete_invitation(session, invitation_id, user)
    return ok(message="Invitation deleted successfully")
