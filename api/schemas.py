"""
Response envelopes for the analytics REST API.

Payload rows are passed through untouched (`Dict[str, Any]`); only the
envelope and pagination block are modelled.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Pagination(BaseModel):
    current_page: Optional[int] = None
    per_page: Optional[int] = None
    total_items: Optional[int] = None
    total_pages: Optional[int] = None
    next_page: Optional[int] = None
    prev_page: Optional[int] = None

    class Config:
        extra = "allow"


class PaginatedResponse(BaseModel):
    pagination: Optional[Pagination] = None
    data: List[Dict[str, Any]] = Field(default_factory=list)

    class Config:
        extra = "allow"


class ApiResponse(BaseModel):
    """What every endpoint method returns: a success flag and the raw JSON body."""

    success: bool
    status_code: int
    data: Any = None

    def paginated(self) -> PaginatedResponse:
        """Parse `data` as a paginated listing."""
        if isinstance(self.data, list):
            return PaginatedResponse(data=self.data)
        return PaginatedResponse(**(self.data or {}))
