from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from stash_backend.schemas.common import SortOrder

ItemType = Literal["FILE", "LINK", "NOTE"]
Importance = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]
ItemSortField = Literal["created_at", "updated_at", "title", "importance"]
TrashSortField = Literal["trashed_at", "created_at", "updated_at", "title"]


@dataclass(frozen=True)
class UploadedBlob:
    """An already-parsed upload part handed to the lifecycle manager."""

    data: bytes
    original_name: str
    mime_type: str
    size: int


class NewTag(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    color: str | None = Field(default=None, max_length=32)


class ItemCreateRequest(BaseModel):
    type: ItemType
    title: str = Field(min_length=1, max_length=500)
    url: str | None = None
    content: str | None = None
    description: str | None = None
    category: str | None = Field(default=None, max_length=200)
    project: str | None = Field(default=None, max_length=200)
    importance: Importance | None = None
    tag_ids: list[str] = Field(default_factory=list)
    new_tags: list[NewTag] = Field(default_factory=list)


class ItemPatchRequest(BaseModel):
    # Presence matters: only fields in model_fields_set are applied.
    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    category: str | None = Field(default=None, max_length=200)
    project: str | None = Field(default=None, max_length=200)
    importance: Importance | None = None
    url: str | None = None
    content: str | None = None
    tag_ids: list[str] | None = None
    new_tags: list[NewTag] | None = None
    remove_file_ids: list[str] | None = None

    @model_validator(mode="after")
    def _reject_null_required(self) -> "ItemPatchRequest":
        for name in ("title", "importance"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class ItemFilters(BaseModel):
    type: ItemType | None = None
    category: str | None = None
    project: str | None = None
    domain: str | None = None
    importance: Importance | None = None
    is_pinned: bool | None = None
    tag_ids: list[str] | None = None
    search: str | None = None
    sort_by: ItemSortField = "created_at"
    sort_order: SortOrder = "desc"


class TrashFilters(BaseModel):
    type: ItemType | None = None
    search: str | None = None
    sort_by: TrashSortField = "trashed_at"
    sort_order: SortOrder = "desc"


class ReorderFilesRequest(BaseModel):
    file_ids: list[str] = Field(min_length=1)


class FileRead(BaseModel):
    id: str
    storage_key: str
    original_name: str
    mime_type: str
    size: int
    url: str
    created_at: datetime


class AttachmentRead(BaseModel):
    id: str
    file_id: str
    position: int
    is_primary: bool
    file: FileRead


class TagRead(BaseModel):
    id: str
    name: str
    color: str


class ItemRead(BaseModel):
    id: str
    user_id: str
    type: ItemType
    title: str
    description: str | None = None
    category: str | None = None
    project: str | None = None
    importance: Importance
    is_pinned: bool
    is_trashed: bool
    trashed_at: datetime | None = None
    tags_text: str | None = None
    url: str | None = None
    domain: str | None = None
    content: str | None = None
    created_at: datetime
    updated_at: datetime
    attachments: list[AttachmentRead] = Field(default_factory=list)
    tags: list[TagRead] = Field(default_factory=list)


class ItemWithMessage(BaseModel):
    item: ItemRead
    message: str


class EmptyTrashResponse(BaseModel):
    message: str
    count: int


class SweepResult(BaseModel):
    deleted_count: int
