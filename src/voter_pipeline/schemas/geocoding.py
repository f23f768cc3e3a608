"""Pydantic v2 schemas for geocoding jobs."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from voter_pipeline.models import GeocodingJobStatus, GeocodingScope, ScopeKind
from voter_pipeline.schemas.common import PaginationMeta


class StartGeocodingJobRequest(BaseModel):
    """Request to start a batch geocoding job for one scope."""

    scope_kind: ScopeKind
    scope_ref: uuid.UUID | None = Field(default=None, description="Voter version id; omit for global scopes")
    force_regeocode: bool | None = Field(
        default=None, description="Re-geocode records that already have coordinates (defaults to server setting)"
    )
    created_by: uuid.UUID | None = None

    @model_validator(mode="after")
    def check_scope(self) -> "StartGeocodingJobRequest":
        # Raises ValueError, which pydantic reports as a 422
        self.to_scope()
        return self

    def to_scope(self) -> GeocodingScope:
        return GeocodingScope(kind=self.scope_kind, ref=self.scope_ref)


class GeocodingJobResponse(BaseModel):
    """Response schema for a geocoding job."""

    model_config = {"from_attributes": True}

    id: uuid.UUID
    scope_kind: ScopeKind
    scope_ref: uuid.UUID | None = None
    status: GeocodingJobStatus
    force_regeocode: bool
    total_records: int
    processed_records: int
    geocoded_count: int
    failed_count: int
    skipped_count: int
    progress_percent: int
    error_message: str | None = None
    created_by: uuid.UUID | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class PaginatedGeocodingJobResponse(BaseModel):
    """Paginated list of geocoding jobs."""

    items: list[GeocodingJobResponse]
    pagination: PaginationMeta
