from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest

from stash_backend.config import settings
from stash_backend.deps import get_blob_store_dep
from stash_backend.integrations.storage.blob_store import BlobStore
from stash_backend.main import app
from stash_backend.schemas.common import ErrorResponse

from conftest import FakeStorage


def _make_async_client() -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


def _as(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


@pytest.fixture
async def client(blob_store: BlobStore) -> AsyncIterator[httpx.AsyncClient]:
    app.dependency_overrides[get_blob_store_dep] = lambda: blob_store
    try:
        async with _make_async_client() as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_blob_store_dep, None)


async def _create(
    client: httpx.AsyncClient, payload: dict[str, Any], files: list[tuple[str, bytes]] | None = None
) -> httpx.Response:
    multipart = [("files", (name, data, "image/png")) for name, data in files or []]
    return await client.post(
        "/api/v1/items",
        headers=_as("u1"),
        data={"data": json.dumps(payload)},
        files=multipart or None,
    )


@pytest.mark.anyio
async def test_requires_user_header_and_renders_error_contract(client: httpx.AsyncClient):
    r = await client.get("/api/v1/items", headers={"X-Request-Id": "rid-1"})
    assert r.status_code == 401
    err = ErrorResponse.model_validate(r.json())
    assert err.error == "unauthorized"
    assert err.request_id == "rid-1"
    assert r.headers["x-request-id"] == "rid-1"


@pytest.mark.anyio
async def test_file_item_lifecycle_over_http(client: httpx.AsyncClient, storage: FakeStorage):
    r = await _create(
        client,
        {"type": "FILE", "title": "Photos", "new_tags": [{"name": "trip"}]},
        files=[("a.png", b"aaa"), ("b.png", b"bbb")],
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["message"] == 'Item "Photos" created with 2 file(s)'
    item = body["item"]
    assert [a["position"] for a in item["attachments"]] == [0, 1]
    assert [a["is_primary"] for a in item["attachments"]] == [True, False]
    assert len(storage.objects) == 2
    item_id = item["id"]
    second_file = item["attachments"][1]["file_id"]

    r = await client.patch(
        f"/api/v1/items/{item_id}/files/{second_file}/primary", headers=_as("u1")
    )
    assert r.status_code == 200
    assert [a["is_primary"] for a in r.json()["item"]["attachments"]] == [False, True]

    r = await client.patch(
        f"/api/v1/items/{item_id}/files/reorder",
        headers=_as("u1"),
        json={"file_ids": [second_file]},
    )
    assert r.status_code == 200
    assert r.json()["item"]["attachments"][0]["file_id"] == second_file

    r = await client.get("/api/v1/items", headers=_as("u1"))
    assert r.status_code == 200
    listing = r.json()
    assert listing["meta"] == {"total": 1, "page": 1, "limit": 20, "totalPages": 1}

    r = await client.get(f"/api/v1/items/{item_id}", headers=_as("u2"))
    assert r.status_code == 403
    assert r.json()["error"] == "forbidden"

    r = await client.patch(f"/api/v1/items/{item_id}/trash", headers=_as("u1"))
    assert r.status_code == 200
    assert r.json()["message"] == '"Photos" moved to trash'

    r = await client.get("/api/v1/items/trash", headers=_as("u1"))
    assert [i["id"] for i in r.json()["data"]] == [item_id]

    r = await client.delete("/api/v1/items/trash", headers=_as("u1"))
    assert r.json() == {"message": "Permanently deleted 1 item(s) from trash", "count": 1}
    assert storage.objects == {}

    r = await client.get(f"/api/v1/items/{item_id}", headers=_as("u1"))
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


@pytest.mark.anyio
async def test_patch_with_multipart_payload(client: httpx.AsyncClient):
    r = await _create(client, {"type": "NOTE", "title": "n", "content": "hello"})
    item_id = r.json()["item"]["id"]

    r = await client.patch(
        f"/api/v1/items/{item_id}",
        headers=_as("u1"),
        data={"data": json.dumps({"content": "updated", "importance": "HIGH"})},
    )
    assert r.status_code == 200, r.text
    assert r.json()["item"]["content"] == "updated"
    assert r.json()["item"]["importance"] == "HIGH"

    r = await client.patch(
        f"/api/v1/items/{item_id}",
        headers=_as("u1"),
        data={"data": json.dumps({"url": "https://example.com"})},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "bad_request"

    r = await client.patch(
        f"/api/v1/items/{item_id}",
        headers=_as("u1"),
        data={"data": json.dumps({"title": None})},
    )
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"


@pytest.mark.anyio
async def test_upload_size_limit(client: httpx.AsyncClient, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "upload_max_size_bytes", 4)
    r = await _create(client, {"type": "FILE", "title": "big"}, files=[("big.bin", b"12345")])
    assert r.status_code == 413
    assert r.json()["error"] == "payload_too_large"


@pytest.mark.anyio
async def test_storage_failure_maps_to_502(
    client: httpx.AsyncClient, storage: FakeStorage, caplog: pytest.LogCaptureFixture
):
    storage.fail_put_payloads.add(b"boom")
    with caplog.at_level(logging.WARNING, logger="stash_backend.error_handlers"):
        r = await _create(client, {"type": "FILE", "title": "x"}, files=[("x.png", b"boom")])
    assert r.status_code == 502
    assert r.json()["error"] == "upstream_error"
    assert r.json()["message"] == "failed to store file"
    assert any(
        "storage failure" in rec.getMessage() and "key=items/" in rec.getMessage()
        for rec in caplog.records
    )


@pytest.mark.anyio
async def test_health():
    async with _make_async_client() as c:
        r = await c.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}
