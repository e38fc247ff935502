"""
Client-side pagination over an already loaded list.
"""

import math
from typing import Generic, List, Sequence, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a filtered list."""

    items: List[T]
    page: int
    per_page: int
    total: int

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))

    @property
    def first_index(self) -> int:
        """1-based index of the first item shown (0 when empty)."""
        return (self.page - 1) * self.per_page + 1 if self.items else 0

    @property
    def last_index(self) -> int:
        return self.first_index + len(self.items) - 1 if self.items else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.last_page

    @property
    def has_previous(self) -> bool:
        return self.page > 1


def paginate(items: Sequence[T], page: int, per_page: int) -> Page[T]:
    """
    Slice one page out of items.

    Pages outside the valid range are clamped to the nearest one.
    """
    if per_page < 1:
        raise ValueError("per_page must be positive")
    last_page = max(1, math.ceil(len(items) / per_page))
    page = min(max(page, 1), last_page)
    start = (page - 1) * per_page
    return Page[T](
        items=list(items[start : start + per_page]),
        page=page,
        per_page=per_page,
        total=len(items),
    )
