"""Import API endpoints — voter-roll versions and chunk uploads."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from voter_pipeline.core.dependencies import get_async_session
from voter_pipeline.lib.importer import ChunkTransportError
from voter_pipeline.schemas.imports import (
    ClearVotersResponse,
    ImportChunkRequest,
    ImportChunkResponse,
    VoterVersionCreateRequest,
    VoterVersionResponse,
)
from voter_pipeline.services.import_service import (
    VoterRowImporter,
    clear_version_voters,
    create_voter_version,
    list_voter_versions,
)

imports_router = APIRouter(prefix="/imports", tags=["imports"])


@imports_router.post(
    "/voter-versions",
    response_model=VoterVersionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_version(
    request: VoterVersionCreateRequest,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> VoterVersionResponse:
    """Create a voter-roll version to import into."""
    try:
        version = await create_voter_version(session, name=request.name, description=request.description)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return VoterVersionResponse(
        id=version.id,
        name=version.name,
        description=version.description,
        created_at=version.created_at,
        voter_count=0,
    )


@imports_router.get(
    "/voter-versions",
    response_model=list[VoterVersionResponse],
)
async def list_versions(
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> list[VoterVersionResponse]:
    """List voter-roll versions with their voter counts."""
    rows = await list_voter_versions(session)
    return [
        VoterVersionResponse(
            id=v.id, name=v.name, description=v.description, created_at=v.created_at, voter_count=count
        )
        for v, count in rows
    ]


@imports_router.post(
    "/voter-versions/{version_id}/chunks",
    response_model=ImportChunkResponse,
)
async def import_chunk(
    version_id: uuid.UUID,
    request: ImportChunkRequest,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> ImportChunkResponse:
    """Import one chunk of raw rows into a version.

    A missing version is reported in the body (``success: false``) so the
    client's retry loop handles it like any other chunk failure.
    """
    importer = VoterRowImporter(session)
    try:
        result = await importer.import_chunk(
            version_id,
            request.header_map,
            request.rows,
            request.start_offset,
            skip_precondition_check=request.skip_precondition_check,
        )
    except ChunkTransportError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e

    return ImportChunkResponse(
        success=result.success,
        imported_count=result.imported_count,
        errors=result.errors,
        error=result.error,
    )


@imports_router.delete(
    "/voter-versions/{version_id}/voters",
    response_model=ClearVotersResponse,
)
async def clear_voters(
    version_id: uuid.UUID,
    session: AsyncSession = Depends(get_async_session),  # noqa: B008
) -> ClearVotersResponse:
    """Delete every voter in a version ahead of a clean re-import."""
    try:
        deleted = await clear_version_voters(session, version_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return ClearVotersResponse(deleted_count=deleted)
