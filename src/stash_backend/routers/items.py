"""Items router: CRUD, attachments, pin and trash."""

from __future__ import annotations

from typing import Annotated, TypeVar

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from sqlmodel.ext.asyncio.session import AsyncSession

from stash_backend.db import get_session
from stash_backend.deps import get_blob_store_dep, get_current_user_id, read_uploads
from stash_backend.integrations.storage.blob_store import BlobStore
from stash_backend.schemas.common import MessageResponse, Page, SortOrder
from stash_backend.schemas.items import (
    EmptyTrashResponse,
    Importance,
    ItemCreateRequest,
    ItemFilters,
    ItemPatchRequest,
    ItemRead,
    ItemSortField,
    ItemType,
    ItemWithMessage,
    ReorderFilesRequest,
    TrashFilters,
    TrashSortField,
)
from stash_backend.services import items_service, trash_service

router = APIRouter(prefix="/items", tags=["items"])

M = TypeVar("M", bound=BaseModel)


def _parse_form_json(model: type[M], raw: str) -> M:
    # Multipart bodies carry the JSON payload in the "data" field next to the file parts.
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False, include_context=False)) from exc


@router.post("", response_model=ItemWithMessage, status_code=status.HTTP_201_CREATED)
async def create_item(
    data: Annotated[str, Form()],
    files: Annotated[list[UploadFile] | None, File()] = None,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> ItemWithMessage:
    payload = _parse_form_json(ItemCreateRequest, data)
    uploads = await read_uploads(files)
    return await items_service.create_item(
        session, user_id=user_id, payload=payload, uploads=uploads, blob_store=blob_store
    )


@router.get("", response_model=Page[ItemRead])
async def list_items(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    type: Annotated[ItemType | None, Query()] = None,
    category: Annotated[str | None, Query()] = None,
    project: Annotated[str | None, Query()] = None,
    domain: Annotated[str | None, Query()] = None,
    importance: Annotated[Importance | None, Query()] = None,
    is_pinned: Annotated[bool | None, Query()] = None,
    tag_ids: Annotated[list[str] | None, Query()] = None,
    search: Annotated[str | None, Query()] = None,
    sort_by: Annotated[ItemSortField, Query()] = "created_at",
    sort_order: Annotated[SortOrder, Query()] = "desc",
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> Page[ItemRead]:
    filters = ItemFilters(
        type=type,
        category=category,
        project=project,
        domain=domain,
        importance=importance,
        is_pinned=is_pinned,
        tag_ids=tag_ids,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await items_service.list_items(
        session, user_id=user_id, filters=filters, page=page, limit=limit, blob_store=blob_store
    )


@router.get("/trash", response_model=Page[ItemRead])
async def list_trash(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    type: Annotated[ItemType | None, Query()] = None,
    search: Annotated[str | None, Query()] = None,
    sort_by: Annotated[TrashSortField, Query()] = "trashed_at",
    sort_order: Annotated[SortOrder, Query()] = "desc",
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> Page[ItemRead]:
    filters = TrashFilters(type=type, search=search, sort_by=sort_by, sort_order=sort_order)
    return await trash_service.list_trashed(
        session, user_id=user_id, filters=filters, page=page, limit=limit, blob_store=blob_store
    )


@router.delete("/trash", response_model=EmptyTrashResponse)
async def empty_trash(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> EmptyTrashResponse:
    return await trash_service.empty_trash(session, user_id=user_id, blob_store=blob_store)


@router.delete("/trash/{item_id}", response_model=MessageResponse)
async def permanently_delete_item(
    item_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> MessageResponse:
    return await trash_service.permanently_delete(
        session, user_id=user_id, item_id=item_id, blob_store=blob_store
    )


@router.get("/{item_id}", response_model=ItemRead)
async def get_item(
    item_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> ItemRead:
    return await items_service.get_item(
        session, user_id=user_id, item_id=item_id, blob_store=blob_store
    )


@router.patch("/{item_id}", response_model=ItemWithMessage)
async def update_item(
    item_id: str,
    data: Annotated[str, Form()],
    files: Annotated[list[UploadFile] | None, File()] = None,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> ItemWithMessage:
    patch = _parse_form_json(ItemPatchRequest, data)
    uploads = await read_uploads(files)
    return await items_service.update_item(
        session,
        user_id=user_id,
        item_id=item_id,
        patch=patch,
        uploads=uploads,
        blob_store=blob_store,
    )


@router.delete("/{item_id}", response_model=MessageResponse)
async def delete_item(
    item_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> MessageResponse:
    return await items_service.delete_item(
        session, user_id=user_id, item_id=item_id, blob_store=blob_store
    )


@router.patch("/{item_id}/pin", response_model=ItemWithMessage)
async def toggle_pin(
    item_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> ItemWithMessage:
    return await items_service.toggle_pin(
        session, user_id=user_id, item_id=item_id, blob_store=blob_store
    )


@router.patch("/{item_id}/files/reorder", response_model=ItemWithMessage)
async def reorder_files(
    item_id: str,
    payload: ReorderFilesRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> ItemWithMessage:
    return await items_service.reorder_files(
        session,
        user_id=user_id,
        item_id=item_id,
        file_ids=payload.file_ids,
        blob_store=blob_store,
    )


@router.patch("/{item_id}/files/{file_id}/primary", response_model=ItemWithMessage)
async def set_primary_file(
    item_id: str,
    file_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> ItemWithMessage:
    return await items_service.set_primary_file(
        session, user_id=user_id, item_id=item_id, file_id=file_id, blob_store=blob_store
    )


@router.patch("/{item_id}/trash", response_model=ItemWithMessage)
async def move_to_trash(
    item_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> ItemWithMessage:
    return await trash_service.move_to_trash(
        session, user_id=user_id, item_id=item_id, blob_store=blob_store
    )


@router.patch("/{item_id}/restore", response_model=ItemWithMessage)
async def restore_from_trash(
    item_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> ItemWithMessage:
    return await trash_service.restore_from_trash(
        session, user_id=user_id, item_id=item_id, blob_store=blob_store
    )
