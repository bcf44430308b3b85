from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import cast

from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from stash_backend.config import settings
from stash_backend.errors import BadRequest
from stash_backend.models import Tag
from stash_backend.schemas.items import NewTag


async def resolve_tag_ids(
    session: AsyncSession,
    *,
    user_id: str,
    tag_ids: Sequence[str] | None,
    new_tags: Sequence[NewTag] | None,
) -> list[str]:
    """Return the de-duplicated union of existing tag ids and inline "create if missing" tags.

    Runs inside the caller's transaction; tags created here roll back with it.
    """

    out: list[str] = []
    seen: set[str] = set()

    wanted = [t for t in dict.fromkeys(tag_ids or []) if t]
    if wanted:
        owned = (
            await session.exec(
                select(Tag.id)
                .where(Tag.user_id == user_id)
                .where(cast(ColumnElement[object], cast(object, Tag.id)).in_(wanted))
            )
        ).all()
        if len(set(owned)) != len(wanted):
            raise BadRequest("some tags do not exist or do not belong to you")
        for tag_id in wanted:
            seen.add(tag_id)
            out.append(tag_id)

    for new_tag in new_tags or []:
        name = new_tag.name.strip()
        if not name:
            continue
        existing = (
            await session.exec(select(Tag).where(Tag.user_id == user_id).where(Tag.name == name))
        ).first()
        if existing is None:
            existing = Tag(
                id=str(uuid.uuid4()),
                user_id=user_id,
                name=name,
                color=new_tag.color or settings.default_tag_color,
            )
            session.add(existing)
            # Flush so a repeated name later in the same request finds this row.
            await session.flush()
        if existing.id not in seen:
            seen.add(existing.id)
            out.append(existing.id)

    return out


async def build_tags_text(session: AsyncSession, tag_ids: Sequence[str]) -> str | None:
    if not tag_ids:
        return None
    names = (
        await session.exec(
            select(Tag.name)
            .where(cast(ColumnElement[object], cast(object, Tag.id)).in_(list(tag_ids)))
            .order_by(Tag.name)
        )
    ).all()
    return ", ".join(names) if names else None
