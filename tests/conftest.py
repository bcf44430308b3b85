from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from stash_backend.config import settings
from stash_backend.db import dispose_engine, init_db, reset_engine_cache
from stash_backend.integrations.storage.blob_store import BlobStore


class FakeStorage:
    """In-memory ObjectStorage with failure injection."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.put_keys: list[str] = []
        self.deleted: list[str] = []
        # Payloads whose put raises.
        self.fail_put_payloads: set[bytes] = set()
        self.fail_delete = False
        self.fail_delete_keys: set[str] = set()

    async def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        _ = content_type
        if data in self.fail_put_payloads:
            raise OSError("storage unavailable")
        self.put_keys.append(key)
        self.objects[key] = data

    async def get_bytes(self, key: str) -> bytes:
        return self.objects[key]

    async def delete(self, key: str) -> None:
        if self.fail_delete or key in self.fail_delete_keys:
            raise OSError("storage unavailable")
        self.deleted.append(key)
        self.objects.pop(key, None)

    async def exists(self, key: str) -> bool:
        return key in self.objects


@pytest.fixture
def anyio_backend() -> str:
    # The code under test (asyncio.gather, aiosqlite) is asyncio-only.
    return "asyncio"


@pytest.fixture(autouse=True)
async def _isolated_db(  # pyright: ignore[reportUnusedFunction]
    anyio_backend: object,  # noqa: ARG001
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncGenerator[None, None]:
    _ = anyio_backend
    monkeypatch.setattr(settings, "database_url", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setattr(settings, "blob_local_dir", str(tmp_path / "blobs"))
    monkeypatch.setattr(settings, "trash_sweep_enabled", False)
    reset_engine_cache()
    await init_db()
    yield
    # Dispose while the event loop is alive so aiosqlite worker threads shut down.
    await dispose_engine()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def blob_store(storage: FakeStorage) -> BlobStore:
    return BlobStore(storage, public_base_url="http://blobs.test/")
