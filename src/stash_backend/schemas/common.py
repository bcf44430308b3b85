from __future__ import annotations

import math
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

SortOrder = Literal["asc", "desc"]


class HealthResponse(BaseModel):
    ok: bool = True


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Pinned error contract: every failure renders as {error, message, request_id, details}."""

    error: str
    message: str
    request_id: str | None = None
    details: object | None = None


class PageMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    page: int
    limit: int
    total_pages: int = Field(alias="totalPages")

    @classmethod
    def build(cls, *, total: int, page: int, limit: int) -> "PageMeta":
        total_pages = math.ceil(total / limit) if limit > 0 else 0
        return cls(total=total, page=page, limit=limit, total_pages=total_pages)


class Page(BaseModel, Generic[T]):
    data: list[T] = Field(default_factory=list)
    meta: PageMeta


def page_offset(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit
