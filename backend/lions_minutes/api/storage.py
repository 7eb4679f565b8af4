from __future__ import annotations

from typing import Dict, Union

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse

from lions_minutes.deps import get_blob_storage, get_current_user
from lions_minutes.services.blob_storage import BlobStorage


router = APIRouter(prefix="/storage", tags=["storage"])


@router.post("/upload-url")
def generate_upload_url(
    user_id: str = Depends(get_current_user),
    blobs: BlobStorage = Depends(get_blob_storage),
) -> Dict[str, str]:
    storage_id, upload_url = blobs.generate_upload_url(user_id)
    return {"storage_id": storage_id, "upload_url": upload_url}


@router.post("/upload/{storage_id}")
async def upload_blob(
    storage_id: str,
    request: Request,
    user_id: str = Depends(get_current_user),
    blobs: BlobStorage = Depends(get_blob_storage),
) -> Dict[str, Union[str, int]]:
    data = await request.body()
    blob = await run_in_threadpool(blobs.upload, storage_id, user_id, data, request.headers.get("content-type"))
    return {"storage_id": blob.id, "bytes": blob.bytes}


# Durable read URL fetched by the speech service, which sends no user header
@router.get("/{storage_id}")
def read_blob(storage_id: str, blobs: BlobStorage = Depends(get_blob_storage)) -> FileResponse:
    blob = blobs.get(storage_id)
    if blob is None or not blob.path:
        raise HTTPException(status_code=404, detail="Blob not found")
    return FileResponse(blob.path, media_type=blob.content_type)
