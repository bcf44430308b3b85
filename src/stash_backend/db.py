from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from stash_backend.config import settings
from stash_backend.db_urls import ensure_sqlite_parent_dir, normalize_database_url_for_async

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_conn: Any, _connection_record: Any) -> None:
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection.
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _create_async_engine(database_url: str) -> AsyncEngine:
    url = normalize_database_url_for_async(database_url)
    engine = create_async_engine(url, echo=False, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        ensure_sqlite_parent_dir(url)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    # Tests/deployments may override settings.database_url, then call reset_engine_cache().
    return _create_async_engine(settings.database_url)


def reset_engine_cache() -> None:
    get_engine.cache_clear()


async def dispose_engine() -> None:
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
    get_engine.cache_clear()


async def init_db() -> None:
    # Local/test convenience only; production schema is owned by Alembic.
    from stash_backend import models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


def _session_maker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    async with _session_maker()() as session:
        yield session


async def get_session() -> AsyncIterator[AsyncSession]:
    async with _session_maker()() as session:
        yield session


async def _rollback_quietly(session: AsyncSession) -> None:
    try:
        await session.rollback()
    except Exception:
        logger.debug("rollback after failed transaction also failed", exc_info=True)


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run a unit of work: commit on success, roll back and re-raise on error.

    Earlier reads on the same session autobegin a transaction, in which case
    `session.begin()` would raise; that transaction is committed explicitly.
    """
    try:
        if session.in_transaction():
            yield session
            await session.commit()
        else:
            async with session.begin():
                yield session
    except Exception:
        await _rollback_quietly(session)
        raise
