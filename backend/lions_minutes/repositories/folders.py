from __future__ import annotations

from typing import Optional
from sqlmodel import Session, select

from lions_minutes.errors import AuthorizationError, NotFoundError
from lions_minutes.models.folder import Folder
from lions_minutes.models.meeting import Meeting


class FoldersRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, folder: Folder) -> Folder:
        self.session.add(folder)
        self.session.commit()
        self.session.refresh(folder)
        return folder

    def get(self, folder_id: int) -> Optional[Folder]:
        return self.session.get(Folder, folder_id)

    def list_for_user(self, user_id: str) -> list[Folder]:
        statement = select(Folder).where(Folder.user_id == user_id).order_by(Folder.id.asc())
        return list(self.session.exec(statement))

    def require_owned(self, folder_id: int, user_id: str) -> Folder:
        folder = self.get(folder_id)
        if folder is None:
            raise NotFoundError("Folder not found")
        if folder.user_id != user_id:
            raise AuthorizationError("Unauthorized to use this folder")
        return folder

    def delete_for_user(self, folder_id: int, user_id: str) -> int:
        """Delete a folder, unlinking (never deleting) its meetings.

        Returns the number of meetings that were unlinked.
        """
        folder = self.require_owned(folder_id, user_id)
        meetings = list(self.session.exec(select(Meeting).where(Meeting.folder_id == folder_id)))
        for meeting in meetings:
            meeting.folder_id = None
            self.session.add(meeting)
        self.session.delete(folder)
        self.session.commit()
        return len(meetings)
