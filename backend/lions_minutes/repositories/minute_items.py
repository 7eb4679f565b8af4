from __future__ import annotations

from typing import Iterable, List
from sqlmodel import Session, select

from lions_minutes.models.minute_item import MinuteItem
from lions_minutes.models.schemas import MinuteItemData


class MinuteItemsRepository:
    """Minute rows for a meeting. Writes are staged; MeetingStore commits."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def replace_for_meeting(self, meeting_id: int, items: Iterable[MinuteItemData]) -> List[MinuteItem]:
        # Simple approach: delete existing then insert
        self.delete_for_meeting(meeting_id)
        saved: List[MinuteItem] = []
        for position, data in enumerate(items):
            row = MinuteItem(
                meeting_id=meeting_id,
                position=position,
                item=data.item,
                description=data.description,
                remark=data.remark,
            )
            self.session.add(row)
            saved.append(row)
        return saved

    def delete_for_meeting(self, meeting_id: int) -> None:
        for row in self.list_by_meeting(meeting_id):
            self.session.delete(row)

    def list_by_meeting(self, meeting_id: int) -> list[MinuteItem]:
        statement = (
            select(MinuteItem)
            .where(MinuteItem.meeting_id == meeting_id)
            .order_by(MinuteItem.position.asc())
        )
        return list(self.session.exec(statement))

    def items_for_meeting(self, meeting_id: int) -> list[MinuteItemData]:
        return [
            MinuteItemData(item=row.item, description=row.description, remark=row.remark)
            for row in self.list_by_meeting(meeting_id)
        ]
