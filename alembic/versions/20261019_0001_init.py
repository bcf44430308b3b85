"""init: items, files, tags, collections

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "items",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=10), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=200), nullable=True),
        sa.Column("project", sa.String(length=200), nullable=True),
        sa.Column(
            "importance", sa.String(length=10), nullable=False, server_default=sa.text("'MEDIUM'")
        ),
        sa.Column("is_pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_trashed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("trashed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tags_text", sa.Text(), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("domain", sa.String(length=255), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    for column in (
        "user_id",
        "type",
        "category",
        "project",
        "importance",
        "is_pinned",
        "is_trashed",
        "trashed_at",
        "domain",
        "created_at",
        "updated_at",
    ):
        op.create_index(f"ix_items_{column}", "items", [column], unique=False)

    op.create_table(
        "files",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("storage_key", sa.String(length=512), nullable=False),
        sa.Column("original_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column(
            "mime_type",
            sa.String(length=255),
            nullable=False,
            server_default="application/octet-stream",
        ),
        sa.Column("size", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("storage_key", name="uq_files_storage_key"),
    )
    op.create_index("ix_files_user_id", "files", ["user_id"], unique=False)
    op.create_index("ix_files_created_at", "files", ["created_at"], unique=False)

    op.create_table(
        "item_files",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "item_id",
            sa.String(length=36),
            sa.ForeignKey("items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "file_id",
            sa.String(length=36),
            sa.ForeignKey("files.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("item_id", "file_id", name="uq_item_files_item_file"),
    )
    op.create_index("ix_item_files_item_id", "item_files", ["item_id"], unique=False)
    op.create_index("ix_item_files_file_id", "item_files", ["file_id"], unique=False)

    op.create_table(
        "tags",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "color", sa.String(length=32), nullable=False, server_default=sa.text("'#6366f1'")
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "name", name="uq_tags_user_id_name"),
    )
    op.create_index("ix_tags_user_id", "tags", ["user_id"], unique=False)

    op.create_table(
        "item_tags",
        sa.Column(
            "item_id",
            sa.String(length=36),
            sa.ForeignKey("items.id", ondelete="CASCADE"),
            primary_key=True,
            nullable=False,
        ),
        sa.Column(
            "tag_id",
            sa.String(length=36),
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
            nullable=False,
        ),
    )
    op.create_index("ix_item_tags_tag_id", "item_tags", ["tag_id"], unique=False)

    op.create_table(
        "collections",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cover_image", sa.String(length=1024), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("slug_public", sa.String(length=255), nullable=True),
        sa.Column(
            "parent_id",
            sa.String(length=36),
            sa.ForeignKey("collections.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "slug_public", name="uq_collections_user_id_slug_public"),
    )
    for column in ("user_id", "is_public", "parent_id", "created_at", "updated_at"):
        op.create_index(f"ix_collections_{column}", "collections", [column], unique=False)

    op.create_table(
        "collection_items",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "collection_id",
            sa.String(length=36),
            sa.ForeignKey("collections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "item_id",
            sa.String(length=36),
            sa.ForeignKey("items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("collection_id", "item_id", name="uq_collection_items_collection_item"),
    )
    for column in ("user_id", "collection_id", "item_id", "created_at"):
        op.create_index(
            f"ix_collection_items_{column}", "collection_items", [column], unique=False
        )


def downgrade() -> None:
    for column in ("created_at", "item_id", "collection_id", "user_id"):
        op.drop_index(f"ix_collection_items_{column}", table_name="collection_items")
    op.drop_table("collection_items")

    for column in ("updated_at", "created_at", "parent_id", "is_public", "user_id"):
        op.drop_index(f"ix_collections_{column}", table_name="collections")
    op.drop_table("collections")

    op.drop_index("ix_item_tags_tag_id", table_name="item_tags")
    op.drop_table("item_tags")

    op.drop_index("ix_tags_user_id", table_name="tags")
    op.drop_table("tags")

    op.drop_index("ix_item_files_file_id", table_name="item_files")
    op.drop_index("ix_item_files_item_id", table_name="item_files")
    op.drop_table("item_files")

    op.drop_index("ix_files_created_at", table_name="files")
    op.drop_index("ix_files_user_id", table_name="files")
    op.drop_table("files")

    for column in (
        "updated_at",
        "created_at",
        "domain",
        "trashed_at",
        "is_trashed",
        "is_pinned",
        "importance",
        "project",
        "category",
        "type",
        "user_id",
    ):
        op.drop_index(f"ix_items_{column}", table_name="items")
    op.drop_table("items")
