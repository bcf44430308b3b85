from __future__ import annotations

import logging
import uuid
from pathlib import PurePosixPath

from stash_backend.config import settings
from stash_backend.errors import StorageDeleteError, StorageWriteError
from stash_backend.integrations.storage.object_storage import ObjectStorage, get_object_storage


def _extension(filename: str | None) -> str:
    suffix = PurePosixPath(filename or "").suffix
    # Keep the key opaque and URL-safe; odd suffixes are dropped.
    if not suffix or len(suffix) > 16 or not suffix[1:].isalnum():
        return ""
    return suffix.lower()


def build_blob_key(*, folder: str, filename: str | None = None) -> str:
    folder = folder.strip("/") or "uploads"
    return f"{folder}/{uuid.uuid4()}{_extension(filename)}"


class BlobStore:
    """Key generation, error mapping and public URLs on top of an ObjectStorage backend."""

    def __init__(
        self,
        storage: ObjectStorage,
        *,
        public_base_url: str,
        logger: logging.Logger | None = None,
    ) -> None:
        self._storage = storage
        self._public_base_url = public_base_url.rstrip("/")
        self._log = logger or logging.getLogger(__name__)

    async def put(
        self,
        data: bytes,
        content_type: str | None,
        folder: str,
        *,
        filename: str | None = None,
    ) -> str:
        key = build_blob_key(folder=folder, filename=filename)
        try:
            await self._storage.put_bytes(key, data, content_type=content_type)
        except Exception as exc:
            self._log.warning("blob write failed key=%s size=%s", key, len(data), exc_info=True)
            raise StorageWriteError("failed to store file", key=key) from exc
        self._log.info("blob stored key=%s size=%s", key, len(data))
        return key

    async def delete(self, key: str) -> None:
        try:
            await self._storage.delete(key)
        except Exception as exc:
            raise StorageDeleteError("failed to delete stored file", key=key) from exc
        self._log.info("blob deleted key=%s", key)

    async def delete_quietly(self, key: str) -> bool:
        """Delete for cleanup paths: failures are logged and reported as False."""
        try:
            await self.delete(key)
        except StorageDeleteError:
            self._log.error("blob delete failed key=%s (orphaned)", key, exc_info=True)
            return False
        return True

    def public_url(self, key: str) -> str:
        return f"{self._public_base_url}/{key.lstrip('/')}"


def get_blob_store() -> BlobStore:
    return BlobStore(get_object_storage(), public_base_url=settings.blob_public_base_url)
