from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest

from stash_backend.deps import get_blob_store_dep
from stash_backend.integrations.storage.blob_store import BlobStore
from stash_backend.main import app
from stash_backend.schemas.common import ErrorResponse


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


async def _create_collection(client: httpx.AsyncClient, **payload: object) -> str:
    r = await client.post("/api/v1/collections", headers=_as("u1"), json=payload)
    assert r.status_code == 201, r.text
    return r.json()["collection"]["id"]


@pytest.mark.anyio
async def test_tree_membership_and_cascade_over_http(client: httpx.AsyncClient):
    r401 = await client.get("/api/v1/collections")
    assert r401.status_code == 401
    assert ErrorResponse.model_validate(r401.json()).error == "unauthorized"

    parent = await _create_collection(client, name="Parent")
    child = await _create_collection(client, name="Child", parent_id=parent)

    r = await client.patch(
        f"/api/v1/collections/{parent}/move", headers=_as("u1"), json={"parent_id": child}
    )
    assert r.status_code == 400
    assert r.json()["message"] == "cannot move collection into its own descendant"

    r = await client.get(f"/api/v1/collections/{child}/breadcrumb", headers=_as("u1"))
    assert [c["name"] for c in r.json()] == ["Parent", "Child"]

    r = await client.get(f"/api/v1/collections/{parent}/children", headers=_as("u1"))
    assert [c["id"] for c in r.json()["data"]] == [child]

    r = await client.get("/api/v1/collections", headers=_as("u1"), params={"parent_id": "root"})
    assert [c["id"] for c in r.json()["data"]] == [parent]
    assert r.json()["data"][0]["children_count"] == 1

    r = await client.post(
        "/api/v1/items",
        headers=_as("u1"),
        data={"data": '{"type": "LINK", "title": "Example", "url": "https://example.com/a"}'},
    )
    item_id = r.json()["item"]["id"]

    r = await client.post(
        f"/api/v1/collections/{child}/items", headers=_as("u1"), json={"item_ids": [item_id]}
    )
    assert r.json() == {"message": "Successfully added 1 item(s) to collection", "added_count": 1}

    r = await client.get(f"/api/v1/collections/{child}/items", headers=_as("u1"))
    assert [i["id"] for i in r.json()["data"]] == [item_id]
    assert r.json()["data"][0]["domain"] == "example.com"

    r = await client.get(f"/api/v1/collections/{child}", headers=_as("u2"))
    assert r.status_code == 403

    r = await client.request(
        "DELETE",
        f"/api/v1/collections/{child}/items",
        headers=_as("u1"),
        json={"item_ids": [item_id]},
    )
    assert r.json()["removed_count"] == 1

    r = await client.delete(f"/api/v1/collections/{parent}", headers=_as("u1"))
    assert r.status_code == 200
    r = await client.get(f"/api/v1/collections/{child}", headers=_as("u1"))
    assert r.status_code == 404

    r = await client.get(f"/api/v1/items/{item_id}", headers=_as("u1"))
    assert r.status_code == 200


@pytest.mark.anyio
async def test_patch_validation(client: httpx.AsyncClient):
    coll = await _create_collection(client, name="Box")

    r = await client.patch(f"/api/v1/collections/{coll}", headers=_as("u1"), json={})
    assert r.status_code == 422

    r = await client.patch(
        f"/api/v1/collections/{coll}", headers=_as("u1"), json={"is_public": True}
    )
    assert r.status_code == 200
    assert r.json()["collection"]["slug_public"] == "box"
