from __future__ import annotations

import math
from typing import Generic, List, Sequence, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PagedResult(BaseModel, Generic[T]):
    items: List[T]
    page: int
    page_size: int
    total_records: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def create(cls, items: Sequence[T], page: int, page_size: int, total: int) -> "PagedResult[T]":
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be >= 1")
        total_pages = math.ceil(total / page_size)
        return cls(
            items=list(items),
            page=page,
            page_size=page_size,
            total_records=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
        )


def page_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size


def paginate(rows: Sequence[T], page: int, page_size: int) -> PagedResult[T]:
    """Slice an ordered sequence; the total is counted before slicing."""
    total = len(rows)
    start = page_offset(page, page_size)
    return PagedResult.create(rows[start : start + page_size], page, page_size, total)


__all__ = ["PagedResult", "page_offset", "paginate"]
