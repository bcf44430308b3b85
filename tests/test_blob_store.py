from __future__ import annotations

import logging
from pathlib import Path

import pytest

from stash_backend.errors import StorageDeleteError, StorageWriteError
from stash_backend.integrations.storage.blob_store import BlobStore, build_blob_key
from stash_backend.integrations.storage.local_storage import LocalObjectStorage

from conftest import FakeStorage


def test_build_blob_key_keeps_extension_and_folder():
    key = build_blob_key(folder="items/", filename="Report.PDF")
    folder, name = key.split("/")
    assert folder == "items"
    assert name.endswith(".pdf")
    assert len(name) == 36 + len(".pdf")

    assert "." not in build_blob_key(folder="items", filename="README").split("/")[1]
    assert "." not in build_blob_key(folder="items", filename=None).split("/")[1]


def test_public_url_is_pure_join():
    store = BlobStore(FakeStorage(), public_base_url="https://cdn.example.com/")
    assert store.public_url("items/a.png") == "https://cdn.example.com/items/a.png"


@pytest.mark.anyio
async def test_put_and_delete_roundtrip_on_local_storage(tmp_path: Path):
    storage = LocalObjectStorage(root_dir=str(tmp_path / "blobs"))
    store = BlobStore(storage, public_base_url="http://localhost/blobs")

    key = await store.put(b"hello", "text/plain", "items", filename="a.txt")
    assert key.startswith("items/") and key.endswith(".txt")
    assert await storage.get_bytes(key) == b"hello"
    assert storage.resolve_path(key).is_file()

    await store.delete(key)
    assert not await storage.exists(key)
    # Deleting again is not an error.
    await store.delete(key)


@pytest.mark.anyio
async def test_put_failure_is_storage_write_error():
    storage = FakeStorage()
    storage.fail_put_payloads.add(b"boom")
    store = BlobStore(storage, public_base_url="http://blobs.test")

    with pytest.raises(StorageWriteError) as exc:
        await store.put(b"boom", None, "items", filename="x.bin")
    assert exc.value.status_code == 502
    assert exc.value.key is not None and exc.value.key.startswith("items/")
    assert storage.objects == {}


@pytest.mark.anyio
async def test_delete_failure_raises_but_quiet_delete_logs(caplog: pytest.LogCaptureFixture):
    storage = FakeStorage()
    storage.fail_delete = True
    store = BlobStore(
        storage, public_base_url="http://blobs.test", logger=logging.getLogger("test.blobs")
    )

    with pytest.raises(StorageDeleteError):
        await store.delete("items/k1")

    with caplog.at_level(logging.ERROR, logger="test.blobs"):
        ok = await store.delete_quietly("items/k2")
    assert ok is False
    assert any("items/k2" in r.getMessage() for r in caplog.records)


def test_local_storage_rejects_path_traversal(tmp_path: Path):
    storage = LocalObjectStorage(root_dir=str(tmp_path))
    with pytest.raises(ValueError):
        storage.resolve_path("../etc/passwd")
