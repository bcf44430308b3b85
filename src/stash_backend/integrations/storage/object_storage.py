from __future__ import annotations

from typing import Protocol

from stash_backend.config import settings


class ObjectStorage(Protocol):
    """Raw byte storage addressed by key. Backends raise their native errors."""

    async def put_bytes(
        self, key: str, data: bytes, *, content_type: str | None = None
    ) -> None: ...

    async def get_bytes(self, key: str) -> bytes: ...

    async def delete(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...


def get_object_storage() -> ObjectStorage:
    # Local disk unless the full S3 set is configured.
    if settings.s3_configured():
        from .s3_storage import S3ObjectStorage

        return S3ObjectStorage(
            endpoint_url=settings.s3_endpoint_url,
            region=settings.s3_region,
            bucket=settings.s3_bucket,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            force_path_style=settings.s3_force_path_style,
        )

    from .local_storage import LocalObjectStorage

    return LocalObjectStorage(root_dir=settings.blob_local_dir)
