from __future__ import annotations

from typing import Iterable, Optional
from sqlmodel import Session, select

from lions_minutes.models.attendance import Attendance
from lions_minutes.models.member import Member


class MembersRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, member: Member) -> Member:
        self.session.add(member)
        self.session.commit()
        self.session.refresh(member)
        return member

    def get(self, member_id: int) -> Optional[Member]:
        return self.session.get(Member, member_id)

    def list(self) -> list[Member]:
        statement = select(Member).order_by(Member.id.asc())
        return list(self.session.exec(statement))

    def missing_ids(self, member_ids: Iterable[int]) -> list[int]:
        return [mid for mid in member_ids if self.get(mid) is None]

    def delete(self, member_id: int) -> bool:
        member = self.get(member_id)
        if member is None:
            return False
        # Drop the member from every attendance list first
        links = list(self.session.exec(select(Attendance).where(Attendance.member_id == member_id)))
        for link in links:
            self.session.delete(link)
        self.session.delete(member)
        self.session.commit()
        return True
