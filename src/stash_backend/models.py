# basedpyright: reportAssignmentType=false
# basedpyright: reportIncompatibleVariableOverride=false

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Column, DateTime, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

ITEM_TYPES = ("FILE", "LINK", "NOTE")

# Declaration order is the rank used when sorting by importance.
IMPORTANCE_LEVELS = ("LOW", "MEDIUM", "HIGH", "URGENT")
DEFAULT_IMPORTANCE = "MEDIUM"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ts(*, index: bool = False, nullable: bool = False) -> Any:
    if nullable:
        return Field(default=None, sa_type=DateTime(timezone=True), index=index)
    return Field(default_factory=utc_now, sa_type=DateTime(timezone=True), index=index)


class OwnedRowBase(SQLModel):
    # Owner ids come from the auth gateway; there is no local users table.
    user_id: str = Field(index=True, min_length=1, max_length=64)


class Item(OwnedRowBase, table=True):
    __tablename__ = "items"  # pyright: ignore[reportAssignmentType]

    id: str = Field(primary_key=True, min_length=1, max_length=36)

    # FILE | LINK | NOTE; fixed at creation.
    type: str = Field(index=True, max_length=10)

    title: str = Field(max_length=500)
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    category: Optional[str] = Field(default=None, max_length=200, index=True)
    project: Optional[str] = Field(default=None, max_length=200, index=True)
    importance: str = Field(default=DEFAULT_IMPORTANCE, max_length=10, index=True)

    is_pinned: bool = Field(default=False, index=True)
    is_trashed: bool = Field(default=False, index=True)
    trashed_at: Optional[datetime] = _ts(index=True, nullable=True)

    # Denormalized "tag1, tag2" for substring search.
    tags_text: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    # LINK payload
    url: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    domain: Optional[str] = Field(default=None, max_length=255, index=True)

    # NOTE payload
    content: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    created_at: datetime = _ts(index=True)
    updated_at: datetime = _ts(index=True)


class File(OwnedRowBase, table=True):
    __tablename__ = "files"  # pyright: ignore[reportAssignmentType]

    id: str = Field(primary_key=True, min_length=1, max_length=36)

    # Metadata only; the bytes live in the blob store under storage_key.
    storage_key: str = Field(unique=True, min_length=1, max_length=512)
    original_name: str = Field(default="", max_length=255)
    mime_type: str = Field(default="application/octet-stream", max_length=255)
    size: int = Field(default=0)

    created_at: datetime = _ts(index=True)


class ItemFile(SQLModel, table=True):
    __tablename__ = "item_files"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (UniqueConstraint("item_id", "file_id", name="uq_item_files_item_file"),)

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    item_id: str = Field(index=True, foreign_key="items.id", ondelete="CASCADE", max_length=36)
    file_id: str = Field(index=True, foreign_key="files.id", ondelete="CASCADE", max_length=36)

    # Dense 0-based order per item.
    position: int = Field(default=0)
    is_primary: bool = Field(default=False)


class Tag(OwnedRowBase, table=True):
    __tablename__ = "tags"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_tags_user_id_name"),)

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=100)
    color: str = Field(default="#6366f1", max_length=32)

    created_at: datetime = _ts()


class ItemTag(SQLModel, table=True):
    __tablename__ = "item_tags"  # pyright: ignore[reportAssignmentType]

    item_id: str = Field(
        primary_key=True, foreign_key="items.id", ondelete="CASCADE", max_length=36
    )
    tag_id: str = Field(
        primary_key=True, index=True, foreign_key="tags.id", ondelete="CASCADE", max_length=36
    )


class Collection(OwnedRowBase, table=True):
    __tablename__ = "collections"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("user_id", "slug_public", name="uq_collections_user_id_slug_public"),
    )

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    cover_image: Optional[str] = Field(default=None, max_length=1024)

    is_public: bool = Field(default=False, index=True)
    slug_public: Optional[str] = Field(default=None, max_length=255)

    # Root collections have no parent; deleting a parent removes the whole subtree.
    parent_id: Optional[str] = Field(
        default=None, index=True, foreign_key="collections.id", ondelete="CASCADE", max_length=36
    )

    created_at: datetime = _ts(index=True)
    updated_at: datetime = _ts(index=True)


class CollectionItem(OwnedRowBase, table=True):
    __tablename__ = "collection_items"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("collection_id", "item_id", name="uq_collection_items_collection_item"),
    )

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    collection_id: str = Field(
        index=True, foreign_key="collections.id", ondelete="CASCADE", max_length=36
    )
    item_id: str = Field(index=True, foreign_key="items.id", ondelete="CASCADE", max_length=36)

    created_at: datetime = _ts(index=True)
