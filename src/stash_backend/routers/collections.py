"""Collections router: folder tree and membership."""

from __future__ import annotations

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from stash_backend.db import get_session
from stash_backend.deps import get_blob_store_dep, get_current_user_id
from stash_backend.integrations.storage.blob_store import BlobStore
from stash_backend.schemas.collections import (
    AddItemsResponse,
    CollectionCreateRequest,
    CollectionFilters,
    CollectionItemsRequest,
    CollectionMoveRequest,
    CollectionPatchRequest,
    CollectionRead,
    CollectionRef,
    CollectionWithMessage,
    RemoveItemsResponse,
)
from stash_backend.schemas.common import MessageResponse, Page, SortOrder
from stash_backend.schemas.items import ItemRead
from stash_backend.services import collections_service

router = APIRouter(prefix="/collections", tags=["collections"])


@router.post("", response_model=CollectionWithMessage, status_code=status.HTTP_201_CREATED)
async def create_collection(
    payload: CollectionCreateRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> CollectionWithMessage:
    return await collections_service.create_collection(session, user_id=user_id, payload=payload)


@router.get("", response_model=Page[CollectionRead])
async def list_collections(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    search: Annotated[str | None, Query()] = None,
    is_public: Annotated[bool | None, Query()] = None,
    parent_id: Annotated[str | None, Query(description='"root" for top level only')] = None,
    sort_by: Annotated[Literal["name", "created_at", "updated_at"], Query()] = "created_at",
    sort_order: Annotated[SortOrder, Query()] = "desc",
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> Page[CollectionRead]:
    filters = CollectionFilters(
        search=search,
        is_public=is_public,
        parent_id=parent_id,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await collections_service.list_collections(
        session, user_id=user_id, filters=filters, page=page, limit=limit
    )


@router.get("/{collection_id}", response_model=CollectionRead)
async def get_collection(
    collection_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> CollectionRead:
    return await collections_service.get_collection(
        session, user_id=user_id, collection_id=collection_id
    )


@router.get("/{collection_id}/children", response_model=Page[CollectionRead])
async def get_children(
    collection_id: str,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> Page[CollectionRead]:
    return await collections_service.get_children(
        session, user_id=user_id, collection_id=collection_id, page=page, limit=limit
    )


@router.get("/{collection_id}/breadcrumb", response_model=list[CollectionRef])
async def get_breadcrumb(
    collection_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> list[CollectionRef]:
    return await collections_service.get_breadcrumb(
        session, user_id=user_id, collection_id=collection_id
    )


@router.patch("/{collection_id}", response_model=CollectionWithMessage)
async def update_collection(
    collection_id: str,
    payload: CollectionPatchRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> CollectionWithMessage:
    return await collections_service.update_collection(
        session, user_id=user_id, collection_id=collection_id, patch=payload
    )


@router.patch("/{collection_id}/move", response_model=CollectionWithMessage)
async def move_collection(
    collection_id: str,
    payload: CollectionMoveRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> CollectionWithMessage:
    return await collections_service.move_collection(
        session, user_id=user_id, collection_id=collection_id, parent_id=payload.parent_id
    )


@router.delete("/{collection_id}", response_model=MessageResponse)
async def delete_collection(
    collection_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> MessageResponse:
    return await collections_service.delete_collection(
        session, user_id=user_id, collection_id=collection_id
    )


@router.post("/{collection_id}/items", response_model=AddItemsResponse)
async def add_items(
    collection_id: str,
    payload: CollectionItemsRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> AddItemsResponse:
    return await collections_service.add_items(
        session, user_id=user_id, collection_id=collection_id, item_ids=payload.item_ids
    )


@router.delete("/{collection_id}/items", response_model=RemoveItemsResponse)
async def remove_items(
    collection_id: str,
    payload: CollectionItemsRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> RemoveItemsResponse:
    return await collections_service.remove_items(
        session, user_id=user_id, collection_id=collection_id, item_ids=payload.item_ids
    )


@router.get("/{collection_id}/items", response_model=Page[ItemRead])
async def get_collection_items(
    collection_id: str,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store_dep),
) -> Page[ItemRead]:
    return await collections_service.get_collection_items(
        session,
        user_id=user_id,
        collection_id=collection_id,
        page=page,
        limit=limit,
        blob_store=blob_store,
    )
