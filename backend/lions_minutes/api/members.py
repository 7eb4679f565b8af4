from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from lions_minutes.deps import get_current_user, get_session
from lions_minutes.models.member import Member
from lions_minutes.repositories.members import MembersRepository


router = APIRouter(prefix="/members", tags=["members"])


class CreateMemberRequest(BaseModel):
    name: str
    role: str
    email: Optional[str] = None


# The roster is shared by the whole club, so members are not owner-scoped
@router.post("", status_code=201)
def create_member(
    body: CreateMemberRequest,
    _: str = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> Member:
    return MembersRepository(session).create(Member(name=body.name, role=body.role, email=body.email))


@router.get("")
def list_members(_: str = Depends(get_current_user), session: Session = Depends(get_session)) -> List[Member]:
    return MembersRepository(session).list()


@router.delete("/{member_id}")
def delete_member(
    member_id: int,
    _: str = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> Dict[str, bool]:
    if not MembersRepository(session).delete(member_id):
        raise HTTPException(status_code=404, detail="Member not found")
    return {"ok": True}
