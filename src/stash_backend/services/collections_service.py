from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Sequence
from typing import cast

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import col, or_, select
from sqlmodel.ext.asyncio.session import AsyncSession

from stash_backend.db import transaction
from stash_backend.errors import BadRequest, Forbidden, NotFound
from stash_backend.integrations.storage.blob_store import BlobStore
from stash_backend.models import Collection, CollectionItem, Item, utc_now
from stash_backend.repositories import collections_repo
from stash_backend.schemas.collections import (
    AddItemsResponse,
    CollectionCreateRequest,
    CollectionFilters,
    CollectionPatchRequest,
    CollectionRead,
    CollectionRef,
    CollectionWithMessage,
    RemoveItemsResponse,
)
from stash_backend.schemas.common import MessageResponse, Page, PageMeta, page_offset
from stash_backend.schemas.items import ItemRead
from stash_backend.services import items_service

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w\s-]", re.ASCII)
_SPACES = re.compile(r"\s+")
_DASHES = re.compile(r"-+")


def slugify(name: str) -> str:
    slug = _NON_WORD.sub("", name.strip().lower())
    slug = _DASHES.sub("-", _SPACES.sub("-", slug)).strip("-")
    return slug or "collection"


async def _unique_slug(
    session: AsyncSession, *, user_id: str, name: str, exclude_id: str | None = None
) -> str:
    base = slugify(name)
    slug = base
    counter = 1
    while await collections_repo.slug_taken(
        session, user_id=user_id, slug=slug, exclude_id=exclude_id
    ):
        slug = f"{base}-{counter}"
        counter += 1
    return slug


async def _ensure_slug_free(
    session: AsyncSession, *, user_id: str, slug: str, exclude_id: str | None = None
) -> None:
    if await collections_repo.slug_taken(
        session, user_id=user_id, slug=slug, exclude_id=exclude_id
    ):
        raise BadRequest(f"Collection with slug '{slug}' already exists")


async def get_owned_collection(
    session: AsyncSession, *, user_id: str, collection_id: str
) -> Collection:
    collection = await collections_repo.get_collection(session, collection_id=collection_id)
    if collection is None:
        raise NotFound("collection not found")
    if collection.user_id != user_id:
        raise Forbidden("you do not have access to this collection")
    return collection


async def _to_reads(session: AsyncSession, collections: Sequence[Collection]) -> list[CollectionRead]:
    ids = [c.id for c in collections]
    items = await collections_repo.item_counts(session, collection_ids=ids)
    children = await collections_repo.children_counts(session, collection_ids=ids)
    parent_names = await collections_repo.names_by_id(
        session, collection_ids=[c.parent_id for c in collections if c.parent_id]
    )

    out: list[CollectionRead] = []
    for c in collections:
        parent = None
        if c.parent_id and c.parent_id in parent_names:
            parent = CollectionRef(id=c.parent_id, name=parent_names[c.parent_id])
        out.append(
            CollectionRead(
                id=c.id,
                user_id=c.user_id,
                name=c.name,
                description=c.description,
                cover_image=c.cover_image,
                is_public=c.is_public,
                slug_public=c.slug_public,
                parent_id=c.parent_id,
                created_at=c.created_at,
                updated_at=c.updated_at,
                item_count=items.get(c.id, 0),
                children_count=children.get(c.id, 0),
                parent=parent,
            )
        )
    return out


async def _to_read(session: AsyncSession, collection: Collection) -> CollectionRead:
    return (await _to_reads(session, [collection]))[0]


async def _check_new_parent(
    session: AsyncSession, *, user_id: str, collection_id: str | None, parent_id: str | None
) -> None:
    """Parent must be owned and, for an existing collection, not inside its own subtree."""
    if parent_id is None:
        return
    if collection_id is not None and parent_id == collection_id:
        raise BadRequest("cannot move collection into itself")
    await get_owned_collection(session, user_id=user_id, collection_id=parent_id)
    if collection_id is None:
        return

    visited: set[str] = set()
    current: str | None = parent_id
    while current is not None and current not in visited:
        if current == collection_id:
            raise BadRequest("cannot move collection into its own descendant")
        visited.add(current)
        current = await collections_repo.get_parent_id(session, collection_id=current)


async def _commit_collection(session: AsyncSession, collection: Collection) -> None:
    try:
        async with transaction(session):
            session.add(collection)
    except IntegrityError as exc:
        # Lost a race on (user_id, slug_public).
        raise BadRequest(
            f"Collection with slug '{collection.slug_public}' already exists"
        ) from exc


async def create_collection(
    session: AsyncSession, *, user_id: str, payload: CollectionCreateRequest
) -> CollectionWithMessage:
    await _check_new_parent(
        session, user_id=user_id, collection_id=None, parent_id=payload.parent_id
    )

    slug = payload.slug_public
    if slug is not None:
        await _ensure_slug_free(session, user_id=user_id, slug=slug)
    elif payload.is_public:
        slug = await _unique_slug(session, user_id=user_id, name=payload.name)

    now = utc_now()
    collection = Collection(
        id=str(uuid.uuid4()),
        user_id=user_id,
        name=payload.name,
        description=payload.description,
        cover_image=payload.cover_image,
        is_public=payload.is_public,
        slug_public=slug,
        parent_id=payload.parent_id,
        created_at=now,
        updated_at=now,
    )
    await _commit_collection(session, collection)
    logger.info("collection created user_id=%s collection_id=%s", user_id, collection.id)
    return CollectionWithMessage(
        collection=await _to_read(session, collection),
        message=f'Collection "{collection.name}" created successfully',
    )


def _collection_order_by(sort_by: str, sort_order: str) -> list[object]:
    key = getattr(Collection, sort_by)
    ordered = sa.desc(key) if sort_order == "desc" else sa.asc(key)
    return [ordered, col(Collection.id).asc()]


async def list_collections(
    session: AsyncSession,
    *,
    user_id: str,
    filters: CollectionFilters,
    page: int,
    limit: int,
) -> Page[CollectionRead]:
    conditions: list[object] = [Collection.user_id == user_id]
    if filters.parent_id == "root":
        conditions.append(col(Collection.parent_id).is_(None))
    elif filters.parent_id:
        conditions.append(Collection.parent_id == filters.parent_id)
    if filters.is_public is not None:
        conditions.append(col(Collection.is_public).is_(filters.is_public))
    if filters.search and filters.search.strip():
        pattern = f"%{filters.search.strip()}%"
        conditions.append(
            or_(col(Collection.name).ilike(pattern), col(Collection.description).ilike(pattern))
        )

    total = (
        await session.exec(select(sa.func.count()).select_from(Collection).where(*conditions))  # type: ignore[arg-type]
    ).one()
    stmt = (
        select(Collection)
        .where(*conditions)  # type: ignore[arg-type]
        .order_by(*_collection_order_by(filters.sort_by, filters.sort_order))  # type: ignore[arg-type]
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    rows = list((await session.exec(stmt)).all())
    return Page[CollectionRead](
        data=await _to_reads(session, rows),
        meta=PageMeta.build(total=int(total), page=page, limit=limit),
    )


async def get_collection(
    session: AsyncSession, *, user_id: str, collection_id: str
) -> CollectionRead:
    collection = await get_owned_collection(session, user_id=user_id, collection_id=collection_id)
    return await _to_read(session, collection)


async def get_children(
    session: AsyncSession, *, user_id: str, collection_id: str, page: int, limit: int
) -> Page[CollectionRead]:
    await get_owned_collection(session, user_id=user_id, collection_id=collection_id)
    filters = CollectionFilters(parent_id=collection_id, sort_by="name", sort_order="asc")
    return await list_collections(
        session, user_id=user_id, filters=filters, page=page, limit=limit
    )


async def get_breadcrumb(
    session: AsyncSession, *, user_id: str, collection_id: str
) -> list[CollectionRef]:
    collection = await get_owned_collection(session, user_id=user_id, collection_id=collection_id)

    chain = [CollectionRef(id=collection.id, name=collection.name)]
    visited = {collection.id}
    parent_id = collection.parent_id
    while parent_id is not None and parent_id not in visited:
        parent = await collections_repo.get_collection(session, collection_id=parent_id)
        if parent is None:
            break
        visited.add(parent.id)
        chain.append(CollectionRef(id=parent.id, name=parent.name))
        parent_id = parent.parent_id
    chain.reverse()
    return chain


async def _apply_move(
    session: AsyncSession, *, user_id: str, collection: Collection, parent_id: str | None
) -> None:
    if parent_id == collection.parent_id:
        return
    await _check_new_parent(
        session, user_id=user_id, collection_id=collection.id, parent_id=parent_id
    )
    collection.parent_id = parent_id
    collection.updated_at = utc_now()


async def move_collection(
    session: AsyncSession, *, user_id: str, collection_id: str, parent_id: str | None
) -> CollectionWithMessage:
    collection = await get_owned_collection(session, user_id=user_id, collection_id=collection_id)
    await _apply_move(session, user_id=user_id, collection=collection, parent_id=parent_id)
    async with transaction(session):
        session.add(collection)
    logger.info(
        "collection moved user_id=%s collection_id=%s parent_id=%s",
        user_id,
        collection_id,
        parent_id,
    )
    return CollectionWithMessage(
        collection=await _to_read(session, collection),
        message="Collection moved successfully",
    )


async def update_collection(
    session: AsyncSession, *, user_id: str, collection_id: str, patch: CollectionPatchRequest
) -> CollectionWithMessage:
    collection = await get_owned_collection(session, user_id=user_id, collection_id=collection_id)
    fields = patch.model_fields_set

    if "parent_id" in fields:
        await _apply_move(
            session, user_id=user_id, collection=collection, parent_id=patch.parent_id
        )

    if "name" in fields and patch.name is not None:
        collection.name = patch.name
    if "description" in fields:
        collection.description = patch.description
    if "cover_image" in fields:
        collection.cover_image = patch.cover_image
    if "slug_public" in fields:
        if patch.slug_public is not None and patch.slug_public != collection.slug_public:
            await _ensure_slug_free(
                session, user_id=user_id, slug=patch.slug_public, exclude_id=collection.id
            )
        collection.slug_public = patch.slug_public
    if "is_public" in fields and patch.is_public is not None:
        collection.is_public = patch.is_public
    if collection.is_public and not collection.slug_public:
        collection.slug_public = await _unique_slug(
            session, user_id=user_id, name=collection.name, exclude_id=collection.id
        )

    collection.updated_at = utc_now()
    await _commit_collection(session, collection)
    return CollectionWithMessage(
        collection=await _to_read(session, collection),
        message=f'"{collection.name}" updated successfully',
    )


async def delete_collection(
    session: AsyncSession, *, user_id: str, collection_id: str
) -> MessageResponse:
    collection = await get_owned_collection(session, user_id=user_id, collection_id=collection_id)
    # Descendants and memberships go through ON DELETE CASCADE; items stay.
    async with transaction(session):
        await session.delete(collection)
    logger.info("collection deleted user_id=%s collection_id=%s", user_id, collection_id)
    return MessageResponse(message="Collection and all sub-collections deleted successfully")


async def add_items(
    session: AsyncSession, *, user_id: str, collection_id: str, item_ids: Sequence[str]
) -> AddItemsResponse:
    await get_owned_collection(session, user_id=user_id, collection_id=collection_id)
    wanted = list(dict.fromkeys(item_ids))

    owned = await collections_repo.owned_item_ids(session, user_id=user_id, item_ids=wanted)
    if len(owned) != len(wanted):
        raise BadRequest("some items do not exist or do not belong to you")

    async with transaction(session):
        added = await collections_repo.insert_members(
            session, user_id=user_id, collection_id=collection_id, item_ids=wanted
        )
    logger.info(
        "collection items added collection_id=%s requested=%s added=%s",
        collection_id,
        len(wanted),
        added,
    )
    return AddItemsResponse(
        message=f"Successfully added {added} item(s) to collection",
        added_count=added,
    )


async def remove_items(
    session: AsyncSession, *, user_id: str, collection_id: str, item_ids: Sequence[str]
) -> RemoveItemsResponse:
    await get_owned_collection(session, user_id=user_id, collection_id=collection_id)
    async with transaction(session):
        result = await session.exec(
            sa.delete(CollectionItem)
            .where(col(CollectionItem.collection_id) == collection_id)
            .where(cast(ColumnElement[object], CollectionItem.item_id).in_(list(item_ids)))
        )
    removed = int(result.rowcount or 0)  # type: ignore[attr-defined]
    return RemoveItemsResponse(
        message=f"Successfully removed {removed} item(s) from collection",
        removed_count=removed,
    )


async def get_collection_items(
    session: AsyncSession,
    *,
    user_id: str,
    collection_id: str,
    page: int,
    limit: int,
    blob_store: BlobStore,
) -> Page[ItemRead]:
    await get_owned_collection(session, user_id=user_id, collection_id=collection_id)
    conditions = [
        CollectionItem.collection_id == collection_id,
        col(Item.is_trashed).is_(False),
    ]
    join_on = col(Item.id) == col(CollectionItem.item_id)

    total = (
        await session.exec(
            select(sa.func.count()).select_from(CollectionItem).join(Item, join_on).where(*conditions)
        )
    ).one()
    stmt = (
        select(Item)
        .join(CollectionItem, join_on)
        .where(*conditions)
        .order_by(col(CollectionItem.created_at).desc(), col(CollectionItem.id).desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    items = list((await session.exec(stmt)).all())
    return Page[ItemRead](
        data=await items_service.load_item_reads(session, items=items, blob_store=blob_store),
        meta=PageMeta.build(total=int(total), page=page, limit=limit),
    )
