from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence
from typing import cast
from urllib.parse import urlsplit

import sqlalchemy as sa
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from stash_backend.config import settings
from stash_backend.db import transaction
from stash_backend.errors import BadRequest, Forbidden, NotFound
from stash_backend.integrations.storage.blob_store import BlobStore
from stash_backend.models import DEFAULT_IMPORTANCE, File, Item, ItemFile, ItemTag, Tag, utc_now
from stash_backend.repositories import items_repo
from stash_backend.repositories.items_repo import Attachment
from stash_backend.schemas.common import MessageResponse, Page, PageMeta, page_offset
from stash_backend.schemas.items import (
    AttachmentRead,
    FileRead,
    ItemCreateRequest,
    ItemFilters,
    ItemPatchRequest,
    ItemRead,
    ItemWithMessage,
    TagRead,
    UploadedBlob,
)
from stash_backend.services import tags_service

logger = logging.getLogger(__name__)

_SCALAR_PATCH_FIELDS = ("title", "description", "category", "project", "importance")


def _new_id() -> str:
    return str(uuid.uuid4())


def _in(column: object, values: Sequence[str]) -> ColumnElement[bool]:
    return cast(ColumnElement[object], column).in_(list(values))


def extract_domain(url: str | None) -> str | None:
    """Hostname of `url`, or None when it cannot be parsed."""
    if not url:
        return None
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError:
        return None
    return host or None


def _require_text(value: str | None, detail: str) -> str:
    if value is None or not value.strip():
        raise BadRequest(detail)
    return value


# -- read mapping ---------------------------------------------------------


def to_item_read(
    item: Item,
    attachments: Sequence[Attachment],
    tags: Sequence[Tag],
    blob_store: BlobStore,
) -> ItemRead:
    return ItemRead(
        id=item.id,
        user_id=item.user_id,
        type=item.type,  # pyright: ignore[reportArgumentType]
        title=item.title,
        description=item.description,
        category=item.category,
        project=item.project,
        importance=item.importance,  # pyright: ignore[reportArgumentType]
        is_pinned=item.is_pinned,
        is_trashed=item.is_trashed,
        trashed_at=item.trashed_at,
        tags_text=item.tags_text,
        url=item.url,
        domain=item.domain,
        content=item.content,
        created_at=item.created_at,
        updated_at=item.updated_at,
        attachments=[
            AttachmentRead(
                id=link.id,
                file_id=link.file_id,
                position=link.position,
                is_primary=link.is_primary,
                file=FileRead(
                    id=f.id,
                    storage_key=f.storage_key,
                    original_name=f.original_name,
                    mime_type=f.mime_type,
                    size=f.size,
                    url=blob_store.public_url(f.storage_key),
                    created_at=f.created_at,
                ),
            )
            for link, f in attachments
        ],
        tags=[TagRead(id=t.id, name=t.name, color=t.color) for t in tags],
    )


async def load_item_reads(
    session: AsyncSession, *, items: Sequence[Item], blob_store: BlobStore
) -> list[ItemRead]:
    item_ids = [i.id for i in items]
    attachments = await items_repo.list_attachments_for_items(session, item_ids=item_ids)
    tags = await items_repo.list_tags_for_items(session, item_ids=item_ids)
    return [
        to_item_read(i, attachments.get(i.id, []), tags.get(i.id, []), blob_store) for i in items
    ]


async def load_item_read(session: AsyncSession, *, item: Item, blob_store: BlobStore) -> ItemRead:
    return (await load_item_reads(session, items=[item], blob_store=blob_store))[0]


async def get_owned_item(
    session: AsyncSession, *, user_id: str, item_id: str, for_update: bool = False
) -> Item:
    item = await items_repo.get_item(session, item_id=item_id, for_update=for_update)
    if item is None:
        raise NotFound("item not found")
    if item.user_id != user_id:
        raise Forbidden("you do not have access to this item")
    return item


# -- blob fan-out ---------------------------------------------------------


async def _compensate(blob_store: BlobStore, keys: Sequence[str]) -> None:
    if not keys:
        return
    await asyncio.gather(*(blob_store.delete_quietly(k) for k in keys))


async def upload_all(blob_store: BlobStore, uploads: Sequence[UploadedBlob]) -> list[str]:
    """Store every upload concurrently; all-or-nothing from the caller's view.

    When any upload fails, the ones that succeeded are deleted and the first
    failure is raised.
    """

    results = await asyncio.gather(
        *(
            blob_store.put(
                u.data, u.mime_type, settings.blob_folder, filename=u.original_name
            )
            for u in uploads
        ),
        return_exceptions=True,
    )
    keys = [r for r in results if isinstance(r, str)]
    failures = [r for r in results if isinstance(r, BaseException)]
    if failures:
        logger.warning(
            "upload batch failed uploaded=%s failed=%s; compensating", len(keys), len(failures)
        )
        await _compensate(blob_store, keys)
        raise failures[0]
    return keys


def _add_files(
    session: AsyncSession,
    *,
    user_id: str,
    uploads: Sequence[UploadedBlob],
    keys: Sequence[str],
) -> list[File]:
    files: list[File] = []
    for upload, key in zip(uploads, keys):
        f = File(
            id=_new_id(),
            user_id=user_id,
            storage_key=key,
            original_name=upload.original_name,
            mime_type=upload.mime_type or "application/octet-stream",
            size=upload.size,
        )
        session.add(f)
        files.append(f)
    return files


async def _replace_tags(session: AsyncSession, *, item_id: str, tag_ids: Sequence[str]) -> None:
    await session.exec(sa.delete(ItemTag).where(col(ItemTag.item_id) == item_id))
    for tag_id in tag_ids:
        session.add(ItemTag(item_id=item_id, tag_id=tag_id))


async def repair_attachments(session: AsyncSession, *, item_id: str) -> None:
    """Renumber positions 0..n-1 and leave exactly one primary (the lowest position if none)."""
    attachments = await items_repo.list_attachments(session, item_id=item_id)
    primary_seen = False
    for position, (link, _f) in enumerate(attachments):
        link.position = position
        if link.is_primary:
            if primary_seen:
                link.is_primary = False
            primary_seen = True
        session.add(link)
    if attachments and not primary_seen:
        attachments[0][0].is_primary = True


# -- operations -----------------------------------------------------------


def _validate_create(payload: ItemCreateRequest, uploads: Sequence[UploadedBlob]) -> None:
    if payload.type != "LINK" and payload.url is not None:
        raise BadRequest("url is only allowed for LINK type items")
    if payload.type != "NOTE" and payload.content is not None:
        raise BadRequest("content is only allowed for NOTE type items")
    if payload.type != "FILE" and uploads:
        raise BadRequest("files can only be attached to FILE type items")

    if payload.type == "FILE":
        if not uploads:
            raise BadRequest("at least one file is required for FILE type items")
        if len(uploads) > settings.upload_max_files:
            raise BadRequest(f"at most {settings.upload_max_files} files per request")
    elif payload.type == "LINK":
        _require_text(payload.url, "url is required for LINK type items")
    else:
        _require_text(payload.content, "content is required for NOTE type items")


def _created_message(item: Item, file_count: int) -> str:
    if item.type == "FILE":
        return f'Item "{item.title}" created with {file_count} file(s)'
    if item.type == "LINK":
        return f'Link "{item.title}" saved successfully'
    return f'Note "{item.title}" created successfully'


async def create_item(
    session: AsyncSession,
    *,
    user_id: str,
    payload: ItemCreateRequest,
    uploads: Sequence[UploadedBlob],
    blob_store: BlobStore,
) -> ItemWithMessage:
    _validate_create(payload, uploads)

    keys: list[str] = []
    if payload.type == "FILE":
        keys = await upload_all(blob_store, uploads)

    now = utc_now()
    item = Item(
        id=_new_id(),
        user_id=user_id,
        type=payload.type,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        project=payload.project,
        importance=payload.importance or DEFAULT_IMPORTANCE,
        url=payload.url.strip() if payload.type == "LINK" and payload.url else None,
        content=payload.content if payload.type == "NOTE" else None,
        created_at=now,
        updated_at=now,
    )
    item.domain = extract_domain(item.url)

    try:
        async with transaction(session):
            tag_ids = await tags_service.resolve_tag_ids(
                session, user_id=user_id, tag_ids=payload.tag_ids, new_tags=payload.new_tags
            )
            item.tags_text = await tags_service.build_tags_text(session, tag_ids)
            session.add(item)
            await session.flush()

            files = _add_files(session, user_id=user_id, uploads=uploads, keys=keys)
            await session.flush()
            for position, f in enumerate(files):
                session.add(
                    ItemFile(
                        id=_new_id(),
                        item_id=item.id,
                        file_id=f.id,
                        position=position,
                        is_primary=position == 0,
                    )
                )
            for tag_id in tag_ids:
                session.add(ItemTag(item_id=item.id, tag_id=tag_id))
    except Exception:
        if keys:
            logger.warning(
                "item create failed after upload user_id=%s blobs=%s; compensating",
                user_id,
                len(keys),
            )
            await _compensate(blob_store, keys)
        raise

    logger.info("item created user_id=%s item_id=%s type=%s", user_id, item.id, item.type)
    read = await load_item_read(session, item=item, blob_store=blob_store)
    return ItemWithMessage(item=read, message=_created_message(item, len(keys)))


async def get_item(
    session: AsyncSession, *, user_id: str, item_id: str, blob_store: BlobStore
) -> ItemRead:
    item = await get_owned_item(session, user_id=user_id, item_id=item_id)
    return await load_item_read(session, item=item, blob_store=blob_store)


def _item_order_by(sort_by: str, sort_order: str) -> list[object]:
    if sort_by == "importance":
        key: object = items_repo.importance_rank()
    else:
        key = getattr(Item, sort_by)
    ordered = sa.desc(key) if sort_order == "desc" else sa.asc(key)  # type: ignore[arg-type]
    return [ordered, col(Item.id).asc()]


async def list_items(
    session: AsyncSession,
    *,
    user_id: str,
    filters: ItemFilters,
    page: int,
    limit: int,
    blob_store: BlobStore,
) -> Page[ItemRead]:
    conditions: list[object] = [Item.user_id == user_id, col(Item.is_trashed).is_(False)]
    if filters.type is not None:
        conditions.append(Item.type == filters.type)
    if filters.category is not None:
        conditions.append(Item.category == filters.category)
    if filters.project is not None:
        conditions.append(Item.project == filters.project)
    if filters.domain is not None:
        conditions.append(Item.domain == filters.domain)
    if filters.importance is not None:
        conditions.append(Item.importance == filters.importance)
    if filters.is_pinned is not None:
        conditions.append(col(Item.is_pinned).is_(filters.is_pinned))
    if filters.tag_ids:
        conditions.append(items_repo.has_any_tag_clause(filters.tag_ids))
    if filters.search and filters.search.strip():
        conditions.append(items_repo.search_clause(filters.search, include_tags=True))

    total = (
        await session.exec(select(sa.func.count()).select_from(Item).where(*conditions))  # type: ignore[arg-type]
    ).one()
    stmt = (
        select(Item)
        .where(*conditions)  # type: ignore[arg-type]
        .order_by(col(Item.is_pinned).desc(), *_item_order_by(filters.sort_by, filters.sort_order))  # type: ignore[arg-type]
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    items = list((await session.exec(stmt)).all())
    data = await load_item_reads(session, items=items, blob_store=blob_store)
    return Page[ItemRead](data=data, meta=PageMeta.build(total=int(total), page=page, limit=limit))


def _validate_patch(
    item: Item,
    patch: ItemPatchRequest,
    uploads: Sequence[UploadedBlob],
    attachments: Sequence[Attachment],
) -> list[str]:
    """Check the patch against the item's kind; returns the file ids to remove."""
    fields = patch.model_fields_set

    if "url" in fields:
        if item.type != "LINK":
            raise BadRequest("url can only be set on LINK type items")
        _require_text(patch.url, "url is required for LINK type items")
    if "content" in fields:
        if item.type != "NOTE":
            raise BadRequest("content can only be set on NOTE type items")
        _require_text(patch.content, "content is required for NOTE type items")

    remove_ids = list(dict.fromkeys(patch.remove_file_ids or []))
    if item.type != "FILE" and (remove_ids or uploads):
        raise BadRequest("files can only be changed on FILE type items")
    if len(uploads) > settings.upload_max_files:
        raise BadRequest(f"at most {settings.upload_max_files} files per request")

    attached = {link.file_id for link, _f in attachments}
    for file_id in remove_ids:
        if file_id not in attached:
            raise NotFound("file not found in this item")
    if remove_ids and not uploads and attached and attached <= set(remove_ids):
        raise BadRequest("at least one file is required for FILE type items")
    return remove_ids


async def _remove_attachment(
    session: AsyncSession, *, user_id: str, item_id: str, file_id: str, blob_store: BlobStore
) -> None:
    found = await items_repo.get_attachment(session, item_id=item_id, file_id=file_id)
    if found is None:
        raise NotFound("file not found in this item")
    link, f = found
    if f.user_id != user_id:
        raise Forbidden("you do not have access to this file")

    # Blob first: a failed delete leaves the rows intact and surfaces to the caller.
    await blob_store.delete(f.storage_key)
    async with transaction(session):
        await session.delete(link)
        await session.flush()
        await session.delete(f)


async def update_item(
    session: AsyncSession,
    *,
    user_id: str,
    item_id: str,
    patch: ItemPatchRequest,
    uploads: Sequence[UploadedBlob],
    blob_store: BlobStore,
) -> ItemWithMessage:
    item = await get_owned_item(session, user_id=user_id, item_id=item_id)
    attachments = await items_repo.list_attachments(session, item_id=item_id)
    remove_ids = _validate_patch(item, patch, uploads, attachments)
    fields = patch.model_fields_set

    keys = await upload_all(blob_store, uploads) if uploads else []
    try:
        removed = 0
        try:
            for file_id in remove_ids:
                await _remove_attachment(
                    session,
                    user_id=user_id,
                    item_id=item_id,
                    file_id=file_id,
                    blob_store=blob_store,
                )
                removed += 1
        finally:
            # Each removal commits on its own; repair whatever already went through.
            if removed:
                async with transaction(session):
                    await repair_attachments(session, item_id=item_id)

        async with transaction(session):
            locked = await get_owned_item(session, user_id=user_id, item_id=item_id, for_update=True)

            if keys:
                base = await items_repo.max_position(session, item_id=item_id)
                files = _add_files(session, user_id=user_id, uploads=uploads, keys=keys)
                await session.flush()
                for offset, f in enumerate(files, start=1):
                    session.add(
                        ItemFile(
                            id=_new_id(),
                            item_id=item_id,
                            file_id=f.id,
                            position=base + offset,
                            is_primary=base < 0 and offset == 1,
                        )
                    )

            for name in _SCALAR_PATCH_FIELDS:
                if name in fields:
                    setattr(locked, name, getattr(patch, name))
            if "url" in fields and patch.url is not None:
                locked.url = patch.url.strip()
                locked.domain = extract_domain(locked.url)
            if "content" in fields:
                locked.content = patch.content

            if "tag_ids" in fields or patch.new_tags:
                tag_ids = await tags_service.resolve_tag_ids(
                    session, user_id=user_id, tag_ids=patch.tag_ids, new_tags=patch.new_tags
                )
                await _replace_tags(session, item_id=item_id, tag_ids=tag_ids)
                locked.tags_text = await tags_service.build_tags_text(session, tag_ids)

            locked.updated_at = utc_now()
            session.add(locked)
            item = locked
    except Exception:
        if keys:
            logger.warning(
                "item update failed after upload item_id=%s blobs=%s; compensating",
                item_id,
                len(keys),
            )
            await _compensate(blob_store, keys)
        raise

    logger.info(
        "item updated user_id=%s item_id=%s added=%s removed=%s",
        user_id,
        item_id,
        len(keys),
        len(remove_ids),
    )
    read = await load_item_read(session, item=item, blob_store=blob_store)
    return ItemWithMessage(item=read, message=f'"{item.title}" updated successfully')


async def purge_items(
    session: AsyncSession, *, item_ids: Sequence[str], blob_store: BlobStore
) -> int:
    """Hard-delete items: blobs first (failures logged), then rows in one transaction."""
    if not item_ids:
        return 0

    attachments = await items_repo.list_attachments_for_items(session, item_ids=item_ids)
    file_ids: list[str] = []
    for item_id in item_ids:
        for _link, f in attachments.get(item_id, []):
            file_ids.append(f.id)
            await blob_store.delete_quietly(f.storage_key)

    async with transaction(session):
        if file_ids:
            await session.exec(sa.delete(File).where(_in(File.id, file_ids)))
        result = await session.exec(sa.delete(Item).where(_in(Item.id, item_ids)))
    deleted = int(result.rowcount or 0)  # type: ignore[attr-defined]
    logger.info("items purged count=%s files=%s", deleted, len(file_ids))
    return deleted


async def delete_item(
    session: AsyncSession, *, user_id: str, item_id: str, blob_store: BlobStore
) -> MessageResponse:
    item = await get_owned_item(session, user_id=user_id, item_id=item_id)
    await purge_items(session, item_ids=[item.id], blob_store=blob_store)
    return MessageResponse(message="Item deleted successfully")


async def toggle_pin(
    session: AsyncSession, *, user_id: str, item_id: str, blob_store: BlobStore
) -> ItemWithMessage:
    item = await get_owned_item(session, user_id=user_id, item_id=item_id)
    async with transaction(session):
        item.is_pinned = not item.is_pinned
        item.updated_at = utc_now()
        session.add(item)
    state = "pinned" if item.is_pinned else "unpinned"
    read = await load_item_read(session, item=item, blob_store=blob_store)
    return ItemWithMessage(item=read, message=f'"{item.title}" {state} successfully')


async def set_primary_file(
    session: AsyncSession,
    *,
    user_id: str,
    item_id: str,
    file_id: str,
    blob_store: BlobStore,
) -> ItemWithMessage:
    item = await get_owned_item(session, user_id=user_id, item_id=item_id)
    found = await items_repo.get_attachment(session, item_id=item_id, file_id=file_id)
    if found is None:
        raise NotFound("file not found in this item")

    async with transaction(session):
        for link, _f in await items_repo.list_attachments(session, item_id=item_id):
            link.is_primary = link.file_id == file_id
            session.add(link)

    read = await load_item_read(session, item=item, blob_store=blob_store)
    return ItemWithMessage(item=read, message="Primary file updated successfully")


async def reorder_files(
    session: AsyncSession,
    *,
    user_id: str,
    item_id: str,
    file_ids: Sequence[str],
    blob_store: BlobStore,
) -> ItemWithMessage:
    item = await get_owned_item(session, user_id=user_id, item_id=item_id)

    async with transaction(session):
        attachments = await items_repo.list_attachments(session, item_id=item_id)
        by_file = {link.file_id: link for link, _f in attachments}
        listed = [by_file[fid] for fid in dict.fromkeys(file_ids) if fid in by_file]
        listed_ids = {link.id for link in listed}
        rest = [link for link, _f in attachments if link.id not in listed_ids]
        for position, link in enumerate(listed + rest):
            link.position = position
            session.add(link)

    read = await load_item_read(session, item=item, blob_store=blob_store)
    return ItemWithMessage(item=read, message="Files reordered successfully")
