from __future__ import annotations

from typing import Optional

from sqlmodel import Session

from lions_minutes.models.stored_blob import StoredBlob


class StoredBlobsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, blob: StoredBlob) -> StoredBlob:
        self.session.add(blob)
        self.session.commit()
        self.session.refresh(blob)
        return blob

    def get(self, storage_id: str) -> Optional[StoredBlob]:
        return self.session.get(StoredBlob, storage_id)

    def update(self, blob: StoredBlob) -> StoredBlob:
        self.session.add(blob)
        self.session.commit()
        self.session.refresh(blob)
        return blob

    def delete(self, blob: StoredBlob) -> None:
        self.session.delete(blob)
        self.session.commit()
