from __future__ import annotations

from collections.abc import Sequence
from typing import Any, cast

from sqlalchemy import case, func
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import col, or_, select
from sqlmodel.ext.asyncio.session import AsyncSession

from stash_backend.models import IMPORTANCE_LEVELS, File, Item, ItemFile, ItemTag, Tag

Attachment = tuple[ItemFile, File]


def _in(column: object, values: Sequence[str]) -> ColumnElement[bool]:
    return cast(ColumnElement[object], column).in_(list(values))


async def get_item(session: AsyncSession, *, item_id: str, for_update: bool = False) -> Item | None:
    stmt = select(Item).where(Item.id == item_id)
    if for_update:
        # Serializes attachment writers per item; ignored on SQLite.
        stmt = stmt.with_for_update()
    return (await session.exec(stmt)).first()


async def list_attachments(session: AsyncSession, *, item_id: str) -> list[Attachment]:
    stmt = (
        select(ItemFile, File)
        .join(File, col(File.id) == col(ItemFile.file_id))
        .where(ItemFile.item_id == item_id)
        .order_by(col(ItemFile.position).asc(), col(ItemFile.id).asc())
    )
    return [(link, f) for link, f in (await session.exec(stmt)).all()]


async def list_attachments_for_items(
    session: AsyncSession, *, item_ids: Sequence[str]
) -> dict[str, list[Attachment]]:
    out: dict[str, list[Attachment]] = {item_id: [] for item_id in item_ids}
    if not item_ids:
        return out
    stmt = (
        select(ItemFile, File)
        .join(File, col(File.id) == col(ItemFile.file_id))
        .where(_in(ItemFile.item_id, item_ids))
        .order_by(col(ItemFile.position).asc(), col(ItemFile.id).asc())
    )
    for link, f in (await session.exec(stmt)).all():
        out.setdefault(link.item_id, []).append((link, f))
    return out


async def list_tags_for_items(
    session: AsyncSession, *, item_ids: Sequence[str]
) -> dict[str, list[Tag]]:
    out: dict[str, list[Tag]] = {item_id: [] for item_id in item_ids}
    if not item_ids:
        return out
    stmt = (
        select(ItemTag.item_id, Tag)
        .join(Tag, col(Tag.id) == col(ItemTag.tag_id))
        .where(_in(ItemTag.item_id, item_ids))
        .order_by(col(Tag.name).asc())
    )
    for item_id, tag in (await session.exec(stmt)).all():
        out.setdefault(item_id, []).append(tag)
    return out


async def get_attachment(
    session: AsyncSession, *, item_id: str, file_id: str
) -> Attachment | None:
    stmt = (
        select(ItemFile, File)
        .join(File, col(File.id) == col(ItemFile.file_id))
        .where(ItemFile.item_id == item_id)
        .where(ItemFile.file_id == file_id)
    )
    row = (await session.exec(stmt)).first()
    if row is None:
        return None
    link, f = row
    return link, f


async def max_position(session: AsyncSession, *, item_id: str) -> int:
    """Highest attachment position, or -1 for an item without attachments."""
    stmt = select(func.max(ItemFile.position)).where(ItemFile.item_id == item_id)
    value = (await session.exec(stmt)).one()
    return -1 if value is None else int(value)


def importance_rank() -> Any:
    return case(
        {level: rank for rank, level in enumerate(IMPORTANCE_LEVELS)},
        value=col(Item.importance),
        else_=-1,
    )


def search_clause(search: str, *, include_tags: bool) -> ColumnElement[bool]:
    pattern = f"%{search.strip()}%"
    clauses = [col(Item.title).ilike(pattern), col(Item.description).ilike(pattern)]
    if include_tags:
        clauses.append(col(Item.tags_text).ilike(pattern))
    return or_(*clauses)


def has_any_tag_clause(tag_ids: Sequence[str]) -> ColumnElement[bool]:
    tagged = select(ItemTag.item_id).where(_in(ItemTag.tag_id, tag_ids))
    return col(Item.id).in_(tagged)
