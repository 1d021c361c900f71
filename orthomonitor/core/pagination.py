"""
Pagination Utility

Provides reusable pagination functionality for SQLAlchemy queries.
"""

from typing import Generic, TypeVar, List, Optional, Tuple
from fastapi import Query
from pydantic import Field
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from math import ceil
from orthomonitor.schemas.common_schemas import APIModel


T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class PaginationParams(APIModel):
    """Pagination parameters for API requests."""

    page: int = Field(default=1, ge=1, description="Page number (starts at 1)")
    limit: int = Field(
        default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page"
    )

    @property
    def skip(self) -> int:
        """Calculate number of records to skip."""
        return (self.page - 1) * self.limit


class PageInfo(APIModel):
    """Pagination metadata."""

    total_items: int = Field(description="Total number of items")
    total_pages: int = Field(description="Total number of pages")
    current_page: int = Field(description="Current page number")
    page_size: int = Field(description="Items per page")
    has_next: bool = Field(description="Whether there is a next page")
    has_previous: bool = Field(description="Whether there is a previous page")
    next_page: Optional[int] = Field(default=None, description="Next page number")
    previous_page: Optional[int] = Field(
        default=None, description="Previous page number"
    )


class PaginatedResponse(APIModel, Generic[T]):
    """Generic paginated response wrapper."""

    items: List[T] = Field(description="List of items for current page")
    page_info: PageInfo = Field(description="Pagination metadata")


class Paginator:
    """Utility class for handling pagination in SQLAlchemy queries."""

    @staticmethod
    async def count(db: AsyncSession, query: Select) -> int:
        """Count the rows a query (without limit/offset) would return."""
        count_query = select(func.count()).select_from(query.order_by(None).subquery())
        result = await db.execute(count_query)
        return result.scalar() or 0

    @staticmethod
    async def fetch_page(
        db: AsyncSession, query: Select, params: PaginationParams
    ) -> Tuple[list, int]:
        """
        Run ``query`` for one page.

        Args:
            db: Database session
            query: SQLAlchemy select query (without limit/offset)
            params: Pagination parameters

        Returns:
            (items, total_items)
        """
        total_items = await Paginator.count(db, query)
        result = await db.execute(query.offset(params.skip).limit(params.limit))
        return list(result.scalars().all()), total_items

    @staticmethod
    def create_page_info(total_items: int, page: int, page_size: int) -> PageInfo:
        """
        Create PageInfo from raw values.

        Args:
            total_items: Total number of items
            page: Current page number
            page_size: Items per page

        Returns:
            PageInfo: Pagination metadata
        """
        total_pages = ceil(total_items / page_size) if total_items > 0 else 0
        has_next = page < total_pages
        has_previous = page > 1

        return PageInfo(
            total_items=total_items,
            total_pages=total_pages,
            current_page=page,
            page_size=page_size,
            has_next=has_next,
            has_previous=has_previous,
            next_page=page + 1 if has_next else None,
            previous_page=page - 1 if has_previous else None,
        )


def get_pagination_params(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> PaginationParams:
    """
    Dependency for pagination parameters.

    Usage in route:
        @router.get("/patients")
        async def list_patients(
            pagination: PaginationParams = Depends(get_pagination_params)
        ):
            ...
    """
    return PaginationParams(page=page, limit=limit)
