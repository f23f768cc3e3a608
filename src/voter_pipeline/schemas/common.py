"""Schemas shared by the paginated list endpoints."""

from pydantic import BaseModel, Field


class PaginationMeta(BaseModel):
    """Page position of a list response."""

    total: int = Field(description="Items matching the filters")
    page: int = Field(description="1-based page number")
    page_size: int = Field(description="Items per page")
    total_pages: int = Field(description="Pages at this page size")

    @classmethod
    def build(cls, total: int, page: int, page_size: int) -> "PaginationMeta":
        return cls(total=total, page=page, page_size=page_size, total_pages=-(-total // page_size))
