"""Uniform response envelope and pagination shapes."""

import math
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    message: str = "Success"
    data: T | None = None


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class Page(BaseModel, Generic[T]):
    items: list[T]
    pagination: Pagination


def ok(data: Any = None, message: str = "Success") -> Envelope:
    return Envelope(success=True, message=message, data=data)


def paginate(items: list[T], total: int, page: int, limit: int) -> Page[T]:
    return Page(
        items=items,
        pagination=Pagination(
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit) if limit else 0,
        ),
    )


def error_body(message: str, errors: list[Any] | None = None) -> dict:
    body: dict[str, Any] = {"success": False, "message": message, "data": None}
    if errors:
        body["errors"] = errors
    return body
