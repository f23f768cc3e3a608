"""Geocoding job API endpoints — start, pause, resume and poll batch jobs."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from voter_pipeline.core.background import BackgroundTaskRunner
from voter_pipeline.core.config import Settings
from voter_pipeline.core.dependencies import get_app_settings, get_async_session, get_task_runner
from voter_pipeline.models import GeocodingJob, GeocodingJobStatus, GeocodingScope, ScopeKind
from voter_pipeline.schemas.common import PaginationMeta
from voter_pipeline.schemas.geocoding import (
    GeocodingJobResponse,
    PaginatedGeocodingJobResponse,
    StartGeocodingJobRequest,
)
from voter_pipeline.services.geocoding_job_service import (
    JobConflictError,
    JobNotFoundError,
    JobStateError,
    execute_geocoding_job,
    get_geocoding_job,
    get_latest_geocoding_job,
    list_geocoding_jobs,
    pause_geocoding_job,
    resume_geocoding_job,
    start_geocoding_job,
)
from voter_pipeline.services.record_sources import SqlRecordSource

geocoding_router = APIRouter(prefix="/geocoding", tags=["geocoding"])


def _schedule(runner: BackgroundTaskRunner, job: GeocodingJob, settings: Settings, *, resumed: bool) -> None:
    run_token = job.run_token if resumed else None
    runner.submit_task(
        execute_geocoding_job(job.id, settings=settings, run_token=run_token),
        name=f"geocoding-job-{job.id}",
    )


@geocoding_router.post(
    "/jobs",
    response_model=GeocodingJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_job(
    request: StartGeocodingJobRequest,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
    runner: BackgroundTaskRunner = Depends(get_task_runner),  # noqa: B008
    settings: Settings = Depends(get_app_settings),  # noqa: B008
) -> GeocodingJobResponse:
    """Start a batch geocoding job for a scope and run it in the background."""
    force = request.force_regeocode
    if force is None:
        force = settings.geocoder_force_regeocode_default

    source = SqlRecordSource(session, settings.geocoder_region_suffix)
    try:
        job = await start_geocoding_job(
            session,
            source,
            request.to_scope(),
            created_by=request.created_by,
            force_regeocode=force,
        )
    except JobConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    _schedule(runner, job, settings, resumed=False)
    return GeocodingJobResponse.model_validate(job)


@geocoding_router.post(
    "/jobs/{job_id}/pause",
    response_model=GeocodingJobResponse,
)
async def pause_job(
    job_id: uuid.UUID,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> GeocodingJobResponse:
    """Pause a running job; it stops after the record in flight."""
    try:
        job = await pause_geocoding_job(session, job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except JobStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return GeocodingJobResponse.model_validate(job)


@geocoding_router.post(
    "/jobs/{job_id}/resume",
    response_model=GeocodingJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def resume_job(
    job_id: uuid.UUID,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
    runner: BackgroundTaskRunner = Depends(get_task_runner),  # noqa: B008
    settings: Settings = Depends(get_app_settings),  # noqa: B008
) -> GeocodingJobResponse:
    """Resume a paused job from its checkpoint in the background."""
    try:
        job = await resume_geocoding_job(session, job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except JobStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    _schedule(runner, job, settings, resumed=True)
    return GeocodingJobResponse.model_validate(job)


@geocoding_router.get(
    "/jobs/latest",
    response_model=GeocodingJobResponse | None,
)
async def get_latest_job(
    scope_kind: ScopeKind = Query(..., description="Scope kind"),  # noqa: B008
    scope_ref: uuid.UUID | None = Query(None, description="Voter version id for voter_version scopes"),  # noqa: B008
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> GeocodingJobResponse | None:
    """Most recent job for a scope in any status, or null. Safe to poll."""
    try:
        scope = GeocodingScope(kind=scope_kind, ref=scope_ref)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    job = await get_latest_geocoding_job(session, scope)
    if job is None:
        return None
    return GeocodingJobResponse.model_validate(job)


@geocoding_router.get(
    "/jobs/{job_id}",
    response_model=GeocodingJobResponse,
)
async def get_job(
    job_id: uuid.UUID,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> GeocodingJobResponse:
    """Get a geocoding job by ID."""
    job = await get_geocoding_job(session, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Geocoding job not found")
    return GeocodingJobResponse.model_validate(job)


@geocoding_router.get(
    "/jobs",
    response_model=PaginatedGeocodingJobResponse,
)
async def list_jobs(
    scope_kind: ScopeKind | None = Query(None),  # noqa: B008
    job_status: GeocodingJobStatus | None = Query(None, alias="status"),  # noqa: B008
    page: int = Query(1, ge=1),  # noqa: B008
    page_size: int = Query(20, ge=1, le=100),  # noqa: B008
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> PaginatedGeocodingJobResponse:
    """List geocoding jobs, newest first."""
    jobs, total = await list_geocoding_jobs(
        session, scope_kind=scope_kind, status=job_status, page=page, page_size=page_size
    )
    return PaginatedGeocodingJobResponse(
        items=[GeocodingJobResponse.model_validate(j) for j in jobs],
        pagination=PaginationMeta.build(total, page, page_size),
    )
