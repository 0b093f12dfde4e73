"""List pagination and PDF page-count estimates."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, List, Sequence, TypeVar

from .pdf_constants import FIRST_PAGE_CAPACITY, LAST_PAGE_CAPACITY, MID_PAGE_CAPACITY

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T]
    page: int
    limit: int
    total: int
    pages: int

    def meta(self) -> dict:
        return {"page": self.page, "limit": self.limit, "total": self.total, "pages": self.pages}


def clamp_page_args(page: int, limit: int, default_limit: int, max_limit: int) -> tuple:
    page = page if page >= 1 else 1
    if limit < 1:
        limit = default_limit
    return page, min(limit, max_limit)


def paginate(items: Sequence[T], page: int, limit: int) -> Page[T]:
    """Slice ``items`` into a 1-based page; past-the-end pages come back empty."""
    total = len(items)
    pages = math.ceil(total / limit) if limit > 0 else 0
    start = (page - 1) * limit
    return Page(
        items=list(items[start : start + limit]),
        page=page,
        limit=limit,
        total=total,
        pages=pages,
    )


def estimate_page_count(item_count: int) -> int:
    if item_count <= FIRST_PAGE_CAPACITY:
        return 1
    remaining = item_count - FIRST_PAGE_CAPACITY
    if remaining <= LAST_PAGE_CAPACITY:
        return 2
    mid_items = remaining - LAST_PAGE_CAPACITY
    mid_pages = (mid_items + MID_PAGE_CAPACITY - 1) // MID_PAGE_CAPACITY
    return 2 + mid_pages


def max_items_for_pages(page_count: int) -> int:
    if page_count <= 1:
        return FIRST_PAGE_CAPACITY
    return FIRST_PAGE_CAPACITY + LAST_PAGE_CAPACITY + MID_PAGE_CAPACITY * (page_count - 2)
