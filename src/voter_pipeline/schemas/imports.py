"""Pydantic v2 schemas for voter-roll versions and chunked imports."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class VoterVersionCreateRequest(BaseModel):
    """Request to create a voter-roll version."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None


class VoterVersionResponse(BaseModel):
    """Response schema for a voter-roll version."""

    model_config = {"from_attributes": True}

    id: uuid.UUID
    name: str
    description: str | None = None
    created_at: datetime
    voter_count: int | None = None


class ImportChunkRequest(BaseModel):
    """One chunk of raw rows, as sent by the chunked import coordinator."""

    header_map: dict[str, int] = Field(..., description="Column name to column index")
    rows: list[list[str]] = Field(..., max_length=5000)
    start_offset: int = Field(default=0, ge=0, description="Zero-based index of the first row in the file")
    skip_precondition_check: bool = False


class ImportChunkResponse(BaseModel):
    """Result of importing one chunk."""

    success: bool
    imported_count: int = 0
    errors: list[str] = Field(default_factory=list)
    error: str | None = None


class ClearVotersResponse(BaseModel):
    """Result of clearing a version's voters."""

    deleted_count: int
