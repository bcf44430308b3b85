from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import cast

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from stash_backend.models import Collection, CollectionItem, Item, utc_now


def _in(column: object, values: Sequence[str]) -> ColumnElement[bool]:
    return cast(ColumnElement[object], column).in_(list(values))


async def get_collection(session: AsyncSession, *, collection_id: str) -> Collection | None:
    return (await session.exec(select(Collection).where(Collection.id == collection_id))).first()


async def get_parent_id(session: AsyncSession, *, collection_id: str) -> str | None:
    stmt = select(Collection.parent_id).where(Collection.id == collection_id)
    return (await session.exec(stmt)).first()


async def slug_taken(
    session: AsyncSession, *, user_id: str, slug: str, exclude_id: str | None = None
) -> bool:
    stmt = select(Collection.id).where(Collection.user_id == user_id).where(
        Collection.slug_public == slug
    )
    if exclude_id is not None:
        stmt = stmt.where(Collection.id != exclude_id)
    return (await session.exec(stmt)).first() is not None


async def item_counts(session: AsyncSession, *, collection_ids: Sequence[str]) -> dict[str, int]:
    """Active (non-trashed) member counts per collection."""
    if not collection_ids:
        return {}
    stmt = (
        select(CollectionItem.collection_id, sa.func.count())
        .join(Item, col(Item.id) == col(CollectionItem.item_id))
        .where(_in(CollectionItem.collection_id, collection_ids))
        .where(col(Item.is_trashed).is_(False))
        .group_by(col(CollectionItem.collection_id))
    )
    return {cid: int(n) for cid, n in (await session.exec(stmt)).all()}


async def children_counts(
    session: AsyncSession, *, collection_ids: Sequence[str]
) -> dict[str, int]:
    if not collection_ids:
        return {}
    stmt = (
        select(Collection.parent_id, sa.func.count())
        .where(_in(Collection.parent_id, collection_ids))
        .group_by(col(Collection.parent_id))
    )
    return {str(pid): int(n) for pid, n in (await session.exec(stmt)).all()}


async def names_by_id(session: AsyncSession, *, collection_ids: Sequence[str]) -> dict[str, str]:
    if not collection_ids:
        return {}
    stmt = select(Collection.id, Collection.name).where(_in(Collection.id, collection_ids))
    return {cid: name for cid, name in (await session.exec(stmt)).all()}


async def insert_members(
    session: AsyncSession, *, user_id: str, collection_id: str, item_ids: Sequence[str]
) -> int:
    """Add memberships, skipping pairs that already exist; returns the number inserted."""
    if not item_ids:
        return 0
    now = utc_now()
    rows = [
        {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "collection_id": collection_id,
            "item_id": item_id,
            "created_at": now,
        }
        for item_id in item_ids
    ]
    table = cast(sa.Table, CollectionItem.__table__)
    insert = pg_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
    stmt = insert(table).values(rows).on_conflict_do_nothing(
        index_elements=["collection_id", "item_id"]
    )
    result = await session.exec(stmt)  # type: ignore[call-overload]
    return int(result.rowcount or 0)


async def owned_item_ids(
    session: AsyncSession, *, user_id: str, item_ids: Sequence[str]
) -> set[str]:
    stmt = select(Item.id).where(Item.user_id == user_id).where(_in(Item.id, item_ids))
    return set((await session.exec(stmt)).all())
