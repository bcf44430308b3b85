from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from stash_backend.schemas.common import SortOrder


class CollectionRef(BaseModel):
    id: str
    name: str


class CollectionCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    cover_image: str | None = Field(default=None, max_length=1024)
    is_public: bool = False
    slug_public: str | None = Field(default=None, min_length=1, max_length=255)
    parent_id: str | None = Field(default=None, max_length=36)


class CollectionPatchRequest(BaseModel):
    # parent_id present (even as null) means "move"; see collections_service.update_collection.
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    cover_image: str | None = Field(default=None, max_length=1024)
    is_public: bool | None = None
    slug_public: str | None = Field(default=None, min_length=1, max_length=255)
    parent_id: str | None = Field(default=None, max_length=36)

    @model_validator(mode="after")
    def _ensure_any_field_present(self) -> "CollectionPatchRequest":
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided")
        for name in ("name", "is_public"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class CollectionMoveRequest(BaseModel):
    parent_id: str | None = Field(max_length=36)


class CollectionFilters(BaseModel):
    search: str | None = None
    is_public: bool | None = None
    # "root" -> top level only; an id -> direct children; None -> all.
    parent_id: str | None = None
    sort_by: Literal["name", "created_at", "updated_at"] = "created_at"
    sort_order: SortOrder = "desc"


class CollectionRead(BaseModel):
    id: str
    user_id: str
    name: str
    description: str | None = None
    cover_image: str | None = None
    is_public: bool
    slug_public: str | None = None
    parent_id: str | None = None
    created_at: datetime
    updated_at: datetime
    item_count: int = 0
    children_count: int = 0
    parent: CollectionRef | None = None


class CollectionWithMessage(BaseModel):
    collection: CollectionRead
    message: str


class CollectionItemsRequest(BaseModel):
    item_ids: list[str] = Field(min_length=1)


class AddItemsResponse(BaseModel):
    message: str
    added_count: int


class RemoveItemsResponse(BaseModel):
    message: str
    removed_count: int
