from __future__ import annotations

from datetime import timedelta

import pytest
import sqlalchemy as sa
from sqlmodel import col, select

from stash_backend.db import session_scope
from stash_backend.errors import BadRequest
from stash_backend.integrations.storage.blob_store import BlobStore
from stash_backend.models import File, Item, utc_now
from stash_backend.schemas.items import ItemCreateRequest, ItemFilters, TrashFilters, UploadedBlob
from stash_backend.services import items_service, trash_service

from conftest import FakeStorage


async def _note(blob_store: BlobStore, *, title: str, user_id: str = "u1") -> str:
    async with session_scope() as session:
        out = await items_service.create_item(
            session,
            user_id=user_id,
            payload=ItemCreateRequest(type="NOTE", title=title, content=title),
            uploads=[],
            blob_store=blob_store,
        )
    return out.item.id


async def _file_item(blob_store: BlobStore, *, title: str, user_id: str = "u1") -> str:
    async with session_scope() as session:
        out = await items_service.create_item(
            session,
            user_id=user_id,
            payload=ItemCreateRequest(type="FILE", title=title),
            uploads=[
                UploadedBlob(
                    data=title.encode(),
                    original_name=f"{title}.txt",
                    mime_type="text/plain",
                    size=len(title),
                )
            ],
            blob_store=blob_store,
        )
    return out.item.id


async def _trash(blob_store: BlobStore, item_id: str, *, user_id: str = "u1") -> None:
    async with session_scope() as session:
        await trash_service.move_to_trash(
            session, user_id=user_id, item_id=item_id, blob_store=blob_store
        )


async def _age_trash(item_id: str, *, days: int) -> None:
    async with session_scope() as session:
        await session.exec(
            sa.update(Item)
            .where(col(Item.id) == item_id)
            .values(trashed_at=utc_now() - timedelta(days=days))
        )
        await session.commit()


@pytest.mark.anyio
async def test_trash_and_restore_round_trip(blob_store: BlobStore):
    item_id = await _note(blob_store, title="Draft")

    async with session_scope() as session:
        before = await items_service.get_item(
            session, user_id="u1", item_id=item_id, blob_store=blob_store
        )

        trashed = await trash_service.move_to_trash(
            session, user_id="u1", item_id=item_id, blob_store=blob_store
        )
        assert trashed.message == '"Draft" moved to trash'
        assert trashed.item.is_trashed is True
        assert trashed.item.trashed_at is not None

        with pytest.raises(BadRequest):
            await trash_service.move_to_trash(
                session, user_id="u1", item_id=item_id, blob_store=blob_store
            )

        listed = await items_service.list_items(
            session, user_id="u1", filters=ItemFilters(), page=1, limit=10, blob_store=blob_store
        )
        assert listed.data == []

        restored = await trash_service.restore_from_trash(
            session, user_id="u1", item_id=item_id, blob_store=blob_store
        )
        assert restored.message == '"Draft" restored from trash'

        with pytest.raises(BadRequest):
            await trash_service.restore_from_trash(
                session, user_id="u1", item_id=item_id, blob_store=blob_store
            )

    after = restored.item
    assert after.is_trashed is False
    assert after.trashed_at is None
    assert after.model_dump(exclude={"is_trashed", "trashed_at"}) == before.model_dump(
        exclude={"is_trashed", "trashed_at"}
    )


@pytest.mark.anyio
async def test_list_trashed_only_returns_callers_trash(blob_store: BlobStore):
    mine = await _note(blob_store, title="mine")
    await _note(blob_store, title="active")
    theirs = await _note(blob_store, title="theirs", user_id="u2")
    await _trash(blob_store, mine)
    await _trash(blob_store, theirs, user_id="u2")

    async with session_scope() as session:
        page = await trash_service.list_trashed(
            session, user_id="u1", filters=TrashFilters(), page=1, limit=10, blob_store=blob_store
        )
    assert [i.title for i in page.data] == ["mine"]
    assert page.meta.total == 1


@pytest.mark.anyio
async def test_permanently_delete_requires_trash(storage: FakeStorage, blob_store: BlobStore):
    item_id = await _file_item(blob_store, title="doc")

    async with session_scope() as session:
        with pytest.raises(BadRequest):
            await trash_service.permanently_delete(
                session, user_id="u1", item_id=item_id, blob_store=blob_store
            )

    await _trash(blob_store, item_id)
    async with session_scope() as session:
        out = await trash_service.permanently_delete(
            session, user_id="u1", item_id=item_id, blob_store=blob_store
        )
    assert out.message == "Item permanently deleted"
    assert storage.objects == {}

    async with session_scope() as session:
        assert (await session.exec(select(Item))).all() == []
        assert (await session.exec(select(File))).all() == []


@pytest.mark.anyio
async def test_empty_trash_is_idempotent(storage: FakeStorage, blob_store: BlobStore):
    a = await _file_item(blob_store, title="a")
    b = await _note(blob_store, title="b")
    keep = await _note(blob_store, title="keep")
    await _trash(blob_store, a)
    await _trash(blob_store, b)

    async with session_scope() as session:
        first = await trash_service.empty_trash(session, user_id="u1", blob_store=blob_store)
    assert first.count == 2
    assert first.message == "Permanently deleted 2 item(s) from trash"
    assert storage.objects == {}

    async with session_scope() as session:
        second = await trash_service.empty_trash(session, user_id="u1", blob_store=blob_store)
        assert second.count == 0
        assert second.message == "Trash is already empty"

        remaining = (await session.exec(select(Item.id))).all()
    assert remaining == [keep]


@pytest.mark.anyio
async def test_sweep_expired_respects_retention_boundary(
    storage: FakeStorage, blob_store: BlobStore
):
    old = await _file_item(blob_store, title="old")
    recent = await _note(blob_store, title="recent", user_id="u2")
    active = await _note(blob_store, title="active")
    await _trash(blob_store, old)
    await _trash(blob_store, recent, user_id="u2")
    await _age_trash(old, days=31)
    await _age_trash(recent, days=10)

    async with session_scope() as session:
        result = await trash_service.sweep_expired(
            session, blob_store=blob_store, retention_days=30
        )
    assert result.deleted_count == 1
    assert storage.objects == {}

    async with session_scope() as session:
        left = set((await session.exec(select(Item.id))).all())
        assert left == {recent, active}

        again = await trash_service.sweep_expired(
            session, blob_store=blob_store, retention_days=30
        )
    assert again.deleted_count == 0
