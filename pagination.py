"""
Paginator: validated page/limit/sort requests turned into bounded, reproducible pages.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel

from errors import ValidationError
from query import ASC, DESC, Query

T = TypeVar("T")
U = TypeVar("U")

SORT_TYPES = {"asc": ASC, "desc": DESC}


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def parse(cls, page: Any, limit: Any, max_limit: int) -> "PageRequest":
        """Reject, never clamp, out of range values."""
        try:
            page, limit = int(page), int(limit)
        except (TypeError, ValueError):
            raise ValidationError("Page and limit must be integers")
        if page < 1:
            raise ValidationError("Page number must be greater than 0")
        if limit < 1 or limit > max_limit:
            raise ValidationError(f"Limit must be between 1 and {max_limit}")
        return cls(page, limit)


@dataclass(frozen=True)
class SortSpec:
    field: str
    direction: int

    @classmethod
    def parse(cls, sort_by: Optional[str], sort_type: Optional[str], allowed: Sequence[str],
              default: str = "created_at") -> "SortSpec":
        field = sort_by or default
        if field not in allowed:
            raise ValidationError(f"Invalid sort field. Allowed fields: {', '.join(allowed)}")
        direction = SORT_TYPES.get((sort_type or "desc").lower())
        if direction is None:
            raise ValidationError("Invalid sort type. Use 'asc' or 'desc'.")
        return cls(field, direction)

    def keys(self) -> Tuple[Tuple[str, int], ...]:
        # _id breaks ties so pages never overlap or skip rows.
        if self.field == "_id":
            return ((self.field, self.direction),)
        return ((self.field, self.direction), ("_id", self.direction))


class Page(BaseModel, Generic[T]):
    items: List[T]
    total_count: int
    total_pages: int
    current_page: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, items: List[Any], total_count: int, request: PageRequest) -> "Page":
        total_pages = math.ceil(total_count / request.limit) if total_count else 0
        return cls(
            items=items,
            total_count=total_count,
            total_pages=total_pages,
            current_page=request.page,
            has_next=request.page < total_pages,
            has_prev=total_count > 0 and request.page > 1,
        )

    def map(self, fn: Callable[[T], U]) -> "Page[U]":
        return Page(
            items=[fn(item) for item in self.items],
            total_count=self.total_count,
            total_pages=self.total_pages,
            current_page=self.current_page,
            has_next=self.has_next,
            has_prev=self.has_prev,
        )


def paginate(store, query: Query, sort: SortSpec, request: PageRequest,
             enrich: Optional[Query] = None) -> Page[dict]:
    """Filter with ``query``, order by ``sort``, cut the requested window, then run ``enrich``
    over the window only. One store round trip."""
    windowed = query.sort(*sort.keys()).window(request.skip, request.limit)
    if enrich is not None:
        windowed = windowed.extend(enrich)
    items, total = store.aggregate_page(windowed)
    return Page.build(items, total, request)
