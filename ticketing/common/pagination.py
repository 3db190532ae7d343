"""
Offset/limit pagination for list endpoints.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 50


@dataclass(frozen=True)
class Page:
    """
    A requested page of results.

    Items returned are the half-open range [offset, offset + limit).
    """

    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def last_index(self) -> int:
        """Inclusive index of the last row on this page."""
        return self.offset + self.limit - 1

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.limit)

    def summary(self, total: Optional[int]) -> Dict[str, Any]:
        """
        Pagination block reported alongside the items.

        Args:
            total (int): Row count across all pages. None is treated as 0.

        Returns:
            dict: total, page, limit, totalPages, hasNextPage, hasPrevPage.
        """
        total = total or 0
        total_pages = self.total_pages(total)
        return {
            "total": total,
            "page": self.page,
            "limit": self.limit,
            "totalPages": total_pages,
            "hasNextPage": self.page < total_pages,
            "hasPrevPage": self.page > 1,
        }
