from __future__ import annotations

from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic import command
from alembic.config import Config

from stash_backend.config import settings
from stash_backend.db import dispose_engine, reset_engine_cache, session_scope
from stash_backend.integrations.storage.blob_store import BlobStore
from stash_backend.schemas.items import ItemCreateRequest
from stash_backend.services import items_service


def _alembic_upgrade_head() -> None:
    cfg = Config("alembic.ini")
    command.upgrade(cfg, "head")


@pytest.mark.anyio
async def test_alembic_upgrade_creates_working_schema(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, blob_store: BlobStore
):
    await dispose_engine()
    db_path = tmp_path / "migrated.db"
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(settings, "database_url", f"sqlite:///{db_path}")
    reset_engine_cache()
    _alembic_upgrade_head()

    engine = sa.create_engine(f"sqlite:///{db_path}")
    try:
        tables = set(sa.inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {
        "items",
        "files",
        "item_files",
        "tags",
        "item_tags",
        "collections",
        "collection_items",
        "alembic_version",
    } <= tables

    async with session_scope() as session:
        out = await items_service.create_item(
            session,
            user_id="u1",
            payload=ItemCreateRequest(type="NOTE", title="migrated", content="ok"),
            uploads=[],
            blob_store=blob_store,
        )
    assert out.item.title == "migrated"
