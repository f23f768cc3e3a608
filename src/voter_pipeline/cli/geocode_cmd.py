"""Geocoding CLI commands for batch geocoding jobs."""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING

import typer

if TYPE_CHECKING:
    from voter_pipeline.models import GeocodingJob, GeocodingScope

geocode_app = typer.Typer()


def _parse_job_id(job_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(job_id)
    except ValueError as e:
        typer.echo(f"Error: invalid job id {job_id!r}", err=True)
        raise typer.Exit(code=1) from e


def _parse_scope(scope: str, ref: str | None) -> GeocodingScope:
    from voter_pipeline.models import GeocodingScope, ScopeKind

    try:
        return GeocodingScope(kind=ScopeKind(scope), ref=uuid.UUID(ref) if ref else None)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


def _echo_job(job: GeocodingJob) -> None:
    typer.echo(f"Job {job.id} [{job.scope_key}]: {job.status}")
    typer.echo(f"  Progress:       {job.processed_records}/{job.total_records} ({job.progress_percent}%)")
    typer.echo(f"  Geocoded:       {job.geocoded_count}")
    typer.echo(f"  Failed:         {job.failed_count}")
    typer.echo(f"  Skipped:        {job.skipped_count}")
    if job.error_message:
        typer.echo(f"  Error:          {job.error_message}")


@geocode_app.command("start")
def start_job(
    scope: str = typer.Option(..., "--scope", help="voter_version, parliament_set or locality_set"),
    ref: str | None = typer.Option(None, "--ref", help="Voter version UUID for voter_version scopes"),
    force: bool | None = typer.Option(  # noqa: FBT001
        None, "--force/--no-force", help="Re-geocode records that already have coordinates"
    ),
) -> None:
    """Start a geocoding job for a scope and run it to completion or pause."""
    asyncio.run(_start_job(_parse_scope(scope, ref), force))


async def _start_job(scope: GeocodingScope, force: bool | None) -> None:
    from voter_pipeline.core.config import get_settings
    from voter_pipeline.core.database import dispose_engine, init_engine, open_session
    from voter_pipeline.lib.geocoder import get_configured_geocoder
    from voter_pipeline.services.geocoding_job_service import (
        JobConflictError,
        run_geocoding_job,
        start_geocoding_job,
    )
    from voter_pipeline.services.record_sources import SqlRecordSource

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with open_session() as session:
            source = SqlRecordSource(session, settings.geocoder_region_suffix)
            try:
                job = await start_geocoding_job(
                    session,
                    source,
                    scope,
                    force_regeocode=settings.geocoder_force_regeocode_default if force is None else force,
                )
            except (JobConflictError, ValueError) as e:
                typer.echo(f"Error: {e}", err=True)
                raise typer.Exit(code=1) from e

            typer.echo(f"Geocoding job created: {job.id} ({job.total_records} records)")
            job = await run_geocoding_job(
                session,
                job.id,
                geocoder=get_configured_geocoder(settings),
                source=source,
                settings=settings,
            )
            _echo_job(job)
    finally:
        await dispose_engine()


@geocode_app.command("resume")
def resume_job(
    job_id: str = typer.Argument(..., help="Geocoding job UUID"),
) -> None:
    """Resume a paused job from its checkpoint and run it in this process."""
    asyncio.run(_resume_job(_parse_job_id(job_id)))


async def _resume_job(job_id: uuid.UUID) -> None:
    from voter_pipeline.core.config import get_settings
    from voter_pipeline.core.database import dispose_engine, init_engine, open_session
    from voter_pipeline.lib.geocoder import get_configured_geocoder
    from voter_pipeline.services.geocoding_job_service import (
        JobNotFoundError,
        JobStateError,
        resume_geocoding_job,
        run_geocoding_job,
    )
    from voter_pipeline.services.record_sources import SqlRecordSource

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with open_session() as session:
            try:
                job = await resume_geocoding_job(session, job_id)
            except (JobNotFoundError, JobStateError) as e:
                typer.echo(f"Error: {e}", err=True)
                raise typer.Exit(code=1) from e

            typer.echo(f"Resuming job {job.id} from {job.processed_records}/{job.total_records}")
            job = await run_geocoding_job(
                session,
                job.id,
                geocoder=get_configured_geocoder(settings),
                source=SqlRecordSource(session, settings.geocoder_region_suffix),
                settings=settings,
                run_token=job.run_token,
            )
            _echo_job(job)
    finally:
        await dispose_engine()


@geocode_app.command("pause")
def pause_job(
    job_id: str = typer.Argument(..., help="Geocoding job UUID"),
) -> None:
    """Pause a running job; its worker stops after the record in flight."""
    asyncio.run(_pause_job(_parse_job_id(job_id)))


async def _pause_job(job_id: uuid.UUID) -> None:
    from voter_pipeline.core.config import get_settings
    from voter_pipeline.core.database import dispose_engine, init_engine, open_session
    from voter_pipeline.services.geocoding_job_service import JobNotFoundError, JobStateError, pause_geocoding_job

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with open_session() as session:
            try:
                job = await pause_geocoding_job(session, job_id)
            except (JobNotFoundError, JobStateError) as e:
                typer.echo(f"Error: {e}", err=True)
                raise typer.Exit(code=1) from e
            _echo_job(job)
    finally:
        await dispose_engine()


@geocode_app.command("status")
def job_status(
    scope: str = typer.Option(..., "--scope", help="voter_version, parliament_set or locality_set"),
    ref: str | None = typer.Option(None, "--ref", help="Voter version UUID for voter_version scopes"),
    watch: bool = typer.Option(False, "--watch", help="Poll while the job is pending or running"),  # noqa: FBT001
) -> None:
    """Show the latest job for a scope."""
    asyncio.run(_job_status(_parse_scope(scope, ref), watch))


async def _job_status(scope: GeocodingScope, watch: bool) -> None:
    from voter_pipeline.core.config import get_settings
    from voter_pipeline.core.database import dispose_engine, init_engine, open_session
    from voter_pipeline.models import GeocodingJobStatus
    from voter_pipeline.services.geocoding_job_service import get_latest_geocoding_job

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    moving = (GeocodingJobStatus.PENDING, GeocodingJobStatus.RUNNING)

    try:
        async with open_session() as session:
            while True:
                job = await get_latest_geocoding_job(session, scope)
                if job is None:
                    typer.echo(f"No geocoding jobs for scope {scope.key}")
                    return
                _echo_job(job)
                if not watch or job.status not in moving:
                    return
                await session.rollback()
                await asyncio.sleep(settings.geocoding_poll_interval)
    finally:
        await dispose_engine()
