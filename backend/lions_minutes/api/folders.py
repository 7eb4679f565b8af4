from __future__ import annotations

from typing import Dict, List, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from lions_minutes.deps import get_current_user, get_session
from lions_minutes.models.folder import Folder
from lions_minutes.repositories.folders import FoldersRepository


router = APIRouter(prefix="/folders", tags=["folders"])


class CreateFolderRequest(BaseModel):
    name: str


@router.post("", status_code=201)
def create_folder(
    body: CreateFolderRequest,
    user_id: str = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> Folder:
    return FoldersRepository(session).create(Folder(name=body.name, user_id=user_id))


@router.get("")
def list_folders(user_id: str = Depends(get_current_user), session: Session = Depends(get_session)) -> List[Folder]:
    return FoldersRepository(session).list_for_user(user_id)


@router.delete("/{folder_id}")
def delete_folder(
    folder_id: int,
    user_id: str = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> Dict[str, Union[bool, int]]:
    unlinked = FoldersRepository(session).delete_for_user(folder_id, user_id)
    return {"ok": True, "unlinked_meetings": unlinked}
