from __future__ import annotations

import logging
from datetime import datetime, timedelta

import sqlalchemy as sa
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from stash_backend.config import settings
from stash_backend.db import transaction
from stash_backend.errors import BadRequest
from stash_backend.integrations.storage.blob_store import BlobStore
from stash_backend.models import Item, utc_now
from stash_backend.repositories import items_repo
from stash_backend.schemas.common import MessageResponse, Page, PageMeta, page_offset
from stash_backend.schemas.items import (
    EmptyTrashResponse,
    ItemRead,
    ItemWithMessage,
    SweepResult,
    TrashFilters,
)
from stash_backend.services import items_service

logger = logging.getLogger(__name__)


async def move_to_trash(
    session: AsyncSession, *, user_id: str, item_id: str, blob_store: BlobStore
) -> ItemWithMessage:
    item = await items_service.get_owned_item(session, user_id=user_id, item_id=item_id)
    if item.is_trashed:
        raise BadRequest("item is already in trash")

    async with transaction(session):
        item.is_trashed = True
        item.trashed_at = utc_now()
        session.add(item)

    read = await items_service.load_item_read(session, item=item, blob_store=blob_store)
    return ItemWithMessage(item=read, message=f'"{item.title}" moved to trash')


async def restore_from_trash(
    session: AsyncSession, *, user_id: str, item_id: str, blob_store: BlobStore
) -> ItemWithMessage:
    item = await items_service.get_owned_item(session, user_id=user_id, item_id=item_id)
    if not item.is_trashed:
        raise BadRequest("item is not in trash")

    async with transaction(session):
        item.is_trashed = False
        item.trashed_at = None
        session.add(item)

    read = await items_service.load_item_read(session, item=item, blob_store=blob_store)
    return ItemWithMessage(item=read, message=f'"{item.title}" restored from trash')


async def list_trashed(
    session: AsyncSession,
    *,
    user_id: str,
    filters: TrashFilters,
    page: int,
    limit: int,
    blob_store: BlobStore,
) -> Page[ItemRead]:
    conditions: list[object] = [Item.user_id == user_id, col(Item.is_trashed).is_(True)]
    if filters.type is not None:
        conditions.append(Item.type == filters.type)
    if filters.search and filters.search.strip():
        conditions.append(items_repo.search_clause(filters.search, include_tags=False))

    key = getattr(Item, filters.sort_by)
    ordered = sa.desc(key) if filters.sort_order == "desc" else sa.asc(key)

    total = (
        await session.exec(select(sa.func.count()).select_from(Item).where(*conditions))  # type: ignore[arg-type]
    ).one()
    stmt = (
        select(Item)
        .where(*conditions)  # type: ignore[arg-type]
        .order_by(ordered, col(Item.id).asc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    items = list((await session.exec(stmt)).all())
    data = await items_service.load_item_reads(session, items=items, blob_store=blob_store)
    return Page[ItemRead](data=data, meta=PageMeta.build(total=int(total), page=page, limit=limit))


async def permanently_delete(
    session: AsyncSession, *, user_id: str, item_id: str, blob_store: BlobStore
) -> MessageResponse:
    item = await items_service.get_owned_item(session, user_id=user_id, item_id=item_id)
    if not item.is_trashed:
        raise BadRequest("item must be in trash before permanent deletion")
    await items_service.purge_items(session, item_ids=[item.id], blob_store=blob_store)
    return MessageResponse(message="Item permanently deleted")


async def empty_trash(
    session: AsyncSession, *, user_id: str, blob_store: BlobStore
) -> EmptyTrashResponse:
    stmt = select(Item.id).where(Item.user_id == user_id).where(col(Item.is_trashed).is_(True))
    item_ids = list((await session.exec(stmt)).all())
    if not item_ids:
        return EmptyTrashResponse(message="Trash is already empty", count=0)

    count = await items_service.purge_items(session, item_ids=item_ids, blob_store=blob_store)
    logger.info("trash emptied user_id=%s count=%s", user_id, count)
    return EmptyTrashResponse(
        message=f"Permanently deleted {count} item(s) from trash", count=count
    )


async def sweep_expired(
    session: AsyncSession,
    *,
    blob_store: BlobStore,
    retention_days: int | None = None,
    now: datetime | None = None,
) -> SweepResult:
    """Purge items of every owner that have sat in trash longer than the retention window."""

    days = settings.trash_retention_days if retention_days is None else retention_days
    cutoff = (now or utc_now()) - timedelta(days=days)
    stmt = (
        select(Item.id)
        .where(col(Item.is_trashed).is_(True))
        .where(col(Item.trashed_at).is_not(None))
        .where(col(Item.trashed_at) <= cutoff)
    )
    item_ids = list((await session.exec(stmt)).all())
    if not item_ids:
        return SweepResult(deleted_count=0)

    count = await items_service.purge_items(session, item_ids=item_ids, blob_store=blob_store)
    logger.info("trash sweep purged count=%s cutoff=%s", count, cutoff.isoformat())
    return SweepResult(deleted_count=count)
