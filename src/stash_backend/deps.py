from __future__ import annotations

from fastapi import HTTPException, Request, UploadFile, status

from stash_backend.config import settings
from stash_backend.integrations.storage.blob_store import BlobStore, get_blob_store
from stash_backend.schemas.items import UploadedBlob

_READ_CHUNK = 1024 * 1024


async def get_current_user_id(request: Request) -> str:
    # The upstream auth gateway authenticates and sets this header; it is trusted as-is.
    raw = request.headers.get(settings.auth_user_header)
    user_id = (raw or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="not authenticated")
    request.state.auth_user_id = user_id
    return user_id


def get_blob_store_dep() -> BlobStore:
    return get_blob_store()


async def read_upload(upload: UploadFile) -> UploadedBlob:
    """Read an upload part into memory, enforcing UPLOAD_MAX_SIZE_BYTES."""
    limit = settings.upload_max_size_bytes
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await upload.read(_READ_CHUNK)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise HTTPException(
                status_code=status.HTTP_413_CONTENT_TOO_LARGE,
                detail=f"file too large (max {limit} bytes)",
            )
        chunks.append(chunk)

    return UploadedBlob(
        data=b"".join(chunks),
        original_name=upload.filename or "upload",
        mime_type=upload.content_type or "application/octet-stream",
        size=total,
    )


async def read_uploads(uploads: list[UploadFile] | None) -> list[UploadedBlob]:
    if not uploads:
        return []
    if len(uploads) > settings.upload_max_files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"at most {settings.upload_max_files} files per request",
        )
    return [await read_upload(u) for u in uploads]
