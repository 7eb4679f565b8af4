"""Local-disk blob store for audio uploads.

Upload is two-step: ask for an upload target, then send the bytes to it.
A blob only gets a durable read URL once its bytes have landed.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Optional

from sqlmodel import Session

from lions_minutes.errors import AuthorizationError, InvalidTransitionError, NotFoundError
from lions_minutes.models.stored_blob import StoredBlob
from lions_minutes.repositories.stored_blobs import StoredBlobsRepository

logger = logging.getLogger("lions_minutes.storage")


_EXTENSIONS = {
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
}


class BlobStorage:
    def __init__(self, session: Session, root_dir: Path, public_base_url: str) -> None:
        self.repo = StoredBlobsRepository(session)
        self.root_dir = root_dir
        self.public_base_url = public_base_url.rstrip("/")

    def generate_upload_url(self, user_id: str) -> tuple[str, str]:
        """Reserve a blob and return ``(storage_id, upload_url)``."""
        blob = self.repo.create(StoredBlob(id=uuid.uuid4().hex, user_id=user_id))
        return blob.id, f"{self.public_base_url}/storage/upload/{blob.id}"

    def upload(self, storage_id: str, user_id: str, data: bytes, content_type: Optional[str]) -> StoredBlob:
        blob = self.repo.get(storage_id)
        if blob is None:
            raise NotFoundError("Upload target not found")
        if blob.user_id != user_id:
            raise AuthorizationError("Unauthorized to upload to this target")
        if blob.uploaded:
            raise InvalidTransitionError("Blob has already been uploaded")
        if not data:
            raise ValueError("Upload body is empty")

        ctype = (content_type or "application/octet-stream").split(";")[0].strip().lower()
        dst = self.root_dir / f"{storage_id}{_EXTENSIONS.get(ctype, '.bin')}"
        tmp = dst.with_suffix(dst.suffix + ".part")
        self.root_dir.mkdir(parents=True, exist_ok=True)
        try:
            tmp.write_bytes(data)
            tmp.replace(dst)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

        blob.path = str(dst)
        blob.content_type = ctype
        blob.bytes = len(data)
        blob.uploaded = True
        blob = self.repo.update(blob)
        logger.info("Stored blob %s (%d bytes, %s)", storage_id, blob.bytes, ctype)
        return blob

    def get(self, storage_id: str) -> Optional[StoredBlob]:
        blob = self.repo.get(storage_id)
        if blob is None or not blob.uploaded:
            return None
        return blob

    def get_url(self, storage_id: str) -> Optional[str]:
        """Durable read URL for an uploaded blob, ``None`` if there is nothing to read."""
        if self.get(storage_id) is None:
            return None
        return f"{self.public_base_url}/storage/{storage_id}"

    def delete(self, storage_id: str) -> bool:
        blob = self.repo.get(storage_id)
        if blob is None:
            return False
        if blob.path:
            Path(blob.path).unlink(missing_ok=True)
        self.repo.delete(blob)
        logger.info("Deleted blob %s", storage_id)
        return True
