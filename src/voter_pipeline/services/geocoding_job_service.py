"""Geocoding job service — resumable, checkpointed batch geocoding over a scope.

A job scans every record of its scope in the record source's stable order.
``processed_records`` is the checkpoint: it is advanced by one, together with
exactly one of the outcome counters, in the same transaction that writes the
record's coordinates. Pausing stops the scan after the in-flight record;
resuming continues from ``offset = processed_records``.

Only the worker holding the job's current ``run_token`` may write counters.
Resuming rotates the token, so a worker left over from before a pause can
never double-count.
"""

import asyncio
import enum
import uuid
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from voter_pipeline.core.config import Settings
from voter_pipeline.core.database import open_session
from voter_pipeline.lib.geocoder import (
    BaseGeocoder,
    GeocodingProviderError,
    GeocodingResult,
    get_configured_geocoder,
)
from voter_pipeline.models import GeocodingJob, GeocodingJobStatus, GeocodingScope, ScopeKind
from voter_pipeline.models.base import utcnow
from voter_pipeline.models.geocoding_job import ACTIVE_STATUSES
from voter_pipeline.services.record_sources import RecordSource, SqlRecordSource

if TYPE_CHECKING:
    from loguru import Logger

SleepFunc = Callable[[float], Awaitable[None]]


class JobConflictError(Exception):
    """A job is already pending, running or paused for the scope."""

    def __init__(self, scope: GeocodingScope, existing_job_id: uuid.UUID | None = None) -> None:
        self.scope = scope
        self.existing_job_id = existing_job_id
        msg = f"An active geocoding job already exists for scope {scope.key}"
        if existing_job_id is not None:
            msg += f" (job {existing_job_id})"
        super().__init__(msg)


class JobNotFoundError(LookupError):
    """No geocoding job with the given id."""

    def __init__(self, job_id: uuid.UUID) -> None:
        self.job_id = job_id
        super().__init__(f"Geocoding job {job_id} not found")


class JobStateError(Exception):
    """A lifecycle operation was called on a job in the wrong state."""

    def __init__(self, job_id: uuid.UUID, status: GeocodingJobStatus, expected: GeocodingJobStatus) -> None:
        self.job_id = job_id
        self.status = status
        self.expected = expected
        super().__init__(f"Geocoding job {job_id} is {status.value}, expected {expected.value}")


class SystemicGeocoderFailure(Exception):
    """Too many consecutive records failed on transient provider errors."""


def job_events(job_id: uuid.UUID, event: str) -> "Logger":
    """Logger for job lifecycle events, routed to the JSON sink for log shippers."""
    return logger.bind(json_output=True, job_id=str(job_id), event=event)


class RecordOutcome(enum.StrEnum):
    """Per-record result; each maps to exactly one job counter."""

    GEOCODED = "geocoded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def counter(self) -> str:
        match self:
            case RecordOutcome.GEOCODED:
                return "geocoded_count"
            case RecordOutcome.FAILED:
                return "failed_count"
            case RecordOutcome.SKIPPED:
                return "skipped_count"


async def _reload(session: AsyncSession, job_id: uuid.UUID) -> GeocodingJob:
    job = await session.get(GeocodingJob, job_id, populate_existing=True)
    if job is None:
        raise JobNotFoundError(job_id)
    return job


async def _state_error(session: AsyncSession, job_id: uuid.UUID, expected: GeocodingJobStatus) -> JobStateError:
    job = await _reload(session, job_id)
    return JobStateError(job_id, GeocodingJobStatus(job.status), expected)


async def _transition(
    session: AsyncSession,
    job_id: uuid.UUID,
    from_status: GeocodingJobStatus,
    **values: object,
) -> GeocodingJob:
    """Conditionally move a job out of ``from_status``; raise if it was not there."""
    result = await session.execute(
        update(GeocodingJob)
        .where(GeocodingJob.id == job_id, GeocodingJob.status == from_status)
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    if result.rowcount == 0:
        raise await _state_error(session, job_id, from_status)
    return await _reload(session, job_id)


async def start_geocoding_job(
    session: AsyncSession,
    source: RecordSource,
    scope: GeocodingScope,
    *,
    created_by: uuid.UUID | None = None,
    force_regeocode: bool = False,
) -> GeocodingJob:
    """Create a pending geocoding job for a scope.

    ``total_records`` is counted once here and stays fixed for the job's life.

    Args:
        session: Database session.
        source: Record source used to validate and count the scope.
        scope: The scope to geocode.
        created_by: Optional id of the requesting user.
        force_regeocode: Re-geocode records that already hold coordinates.

    Returns:
        The persisted pending job.

    Raises:
        ValueError: If the scope references a voter version that does not exist.
        JobConflictError: If an active job already exists for the scope.
    """
    if not await source.scope_exists(scope):
        msg = f"Voter version {scope.ref} not found"
        raise ValueError(msg)

    existing = await session.execute(
        select(GeocodingJob.id)
        .where(GeocodingJob.scope_key == scope.key, GeocodingJob.status.in_(ACTIVE_STATUSES))
        .limit(1)
    )
    existing_id = existing.scalar_one_or_none()
    if existing_id is not None:
        raise JobConflictError(scope, existing_id)

    total = await source.count(scope)
    job = GeocodingJob(
        scope_kind=scope.kind,
        scope_ref=scope.ref,
        scope_key=scope.key,
        status=GeocodingJobStatus.PENDING,
        force_regeocode=force_regeocode,
        total_records=total,
        created_by=created_by,
    )
    session.add(job)
    try:
        await session.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent start on the same scope
        await session.rollback()
        raise JobConflictError(scope) from e
    await session.refresh(job)

    job_events(job.id, "created").info(f"Created geocoding job {job.id} for scope {scope.key} with {total} records")
    return job


async def pause_geocoding_job(session: AsyncSession, job_id: uuid.UUID) -> GeocodingJob:
    """Pause a running job.

    The worker notices before its next record; the in-flight record's outcome
    is still checkpointed.

    Raises:
        JobNotFoundError: If the job does not exist.
        JobStateError: If the job is not running.
    """
    job = await _transition(session, job_id, GeocodingJobStatus.RUNNING, status=GeocodingJobStatus.PAUSED)
    job_events(job_id, "paused").info(f"Paused geocoding job {job_id} at {job.processed_records}/{job.total_records}")
    return job


async def resume_geocoding_job(session: AsyncSession, job_id: uuid.UUID) -> GeocodingJob:
    """Move a paused job back to running under a fresh run token.

    The caller must then execute :func:`run_geocoding_job` with
    ``run_token=job.run_token`` to continue the scan.

    Raises:
        JobNotFoundError: If the job does not exist.
        JobStateError: If the job is not paused.
    """
    job = await _transition(
        session,
        job_id,
        GeocodingJobStatus.PAUSED,
        status=GeocodingJobStatus.RUNNING,
        run_token=uuid.uuid4(),
    )
    job_events(job_id, "resumed").info(
        f"Resumed geocoding job {job_id} from {job.processed_records}/{job.total_records}"
    )
    return job


async def get_geocoding_job(session: AsyncSession, job_id: uuid.UUID) -> GeocodingJob | None:
    """Get a geocoding job by ID, or None."""
    result = await session.execute(select(GeocodingJob).where(GeocodingJob.id == job_id))
    return result.scalar_one_or_none()


async def get_latest_geocoding_job(session: AsyncSession, scope: GeocodingScope) -> GeocodingJob | None:
    """Return the most recently created job for a scope, in any status.

    Pure query; safe to poll.
    """
    result = await session.execute(
        select(GeocodingJob)
        .where(GeocodingJob.scope_key == scope.key)
        .order_by(GeocodingJob.created_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_geocoding_jobs(
    session: AsyncSession,
    *,
    scope_kind: ScopeKind | None = None,
    status: GeocodingJobStatus | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[GeocodingJob], int]:
    """List geocoding jobs with optional filters, newest first.

    Returns:
        Tuple of (jobs, total count).
    """
    query = select(GeocodingJob)
    count_query = select(func.count(GeocodingJob.id))

    if scope_kind:
        query = query.where(GeocodingJob.scope_kind == scope_kind)
        count_query = count_query.where(GeocodingJob.scope_kind == scope_kind)
    if status:
        query = query.where(GeocodingJob.status == status)
        count_query = count_query.where(GeocodingJob.status == status)

    total = (await session.execute(count_query)).scalar_one()
    offset = (page - 1) * page_size
    query = query.order_by(GeocodingJob.created_at.desc()).offset(offset).limit(page_size)
    result = await session.execute(query)
    return list(result.scalars().all()), total


async def _geocode_with_retry(
    geocoder: BaseGeocoder,
    address: str,
    settings: Settings,
    sleep: SleepFunc,
) -> GeocodingResult | None:
    """Geocode one address, retrying transient provider errors with exponential backoff.

    Raises:
        GeocodingProviderError: The last provider error once attempts are exhausted.
    """
    max_attempts = settings.geocoder_max_attempts
    for attempt in range(max_attempts):
        try:
            return await geocoder.geocode(address)
        except GeocodingProviderError as e:
            if attempt == max_attempts - 1:
                raise
            delay = settings.geocoder_retry_base_delay * (2**attempt)
            logger.warning(
                f"Geocoding attempt {attempt + 1}/{max_attempts} failed ({e.message}), retrying in {delay:.1f}s"
            )
            await sleep(delay)
    msg = "geocoder_max_attempts must be positive"
    raise ValueError(msg)


async def _process_record(
    record: object,
    *,
    geocoder: BaseGeocoder,
    source: RecordSource,
    settings: Settings,
    force_regeocode: bool,
    sleep: SleepFunc,
) -> tuple[RecordOutcome, bool]:
    """Decide and apply one record's outcome.

    Returns:
        ``(outcome, transient)`` where ``transient`` marks a failure caused by
        exhausted provider retries.
    """
    address = source.address_for(record)
    if address is None:
        return RecordOutcome.SKIPPED, False
    if source.has_coordinates(record) and not force_regeocode:
        return RecordOutcome.SKIPPED, False

    try:
        result = await _geocode_with_retry(geocoder, address, settings, sleep)
    except GeocodingProviderError as e:
        logger.warning(f"Giving up on record after {settings.geocoder_max_attempts} attempts: {e.message}")
        return RecordOutcome.FAILED, True
    finally:
        if geocoder.rate_limit_delay > 0:
            await sleep(geocoder.rate_limit_delay)

    if result is None or not result.is_acceptable(settings.geocoder_min_confidence):
        return RecordOutcome.FAILED, False

    source.store_coordinates(record, result)
    return RecordOutcome.GEOCODED, False


async def _checkpoint(
    session: AsyncSession,
    job_id: uuid.UUID,
    run_token: uuid.UUID,
    outcome: RecordOutcome,
) -> bool:
    """Commit the record's writes and advance the counters in one transaction.

    Returns:
        False if this worker no longer holds the job's run token; nothing is
        committed in that case.
    """
    counter = getattr(GeocodingJob, outcome.counter)
    result = await session.execute(
        update(GeocodingJob)
        .where(GeocodingJob.id == job_id, GeocodingJob.run_token == run_token)
        .values(
            {
                GeocodingJob.processed_records: GeocodingJob.processed_records + 1,
                counter: counter + 1,
                GeocodingJob.updated_at: utcnow(),
            }
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await session.rollback()
        return False
    await session.commit()
    return True


async def _finish(
    session: AsyncSession,
    job_id: uuid.UUID,
    run_token: uuid.UUID,
    status: GeocodingJobStatus,
    error_message: str | None = None,
) -> bool:
    """Record the final status; False if this worker no longer holds the claim."""
    now = utcnow()
    result = await session.execute(
        update(GeocodingJob)
        .where(
            GeocodingJob.id == job_id,
            GeocodingJob.run_token == run_token,
            GeocodingJob.status.in_((GeocodingJobStatus.RUNNING, GeocodingJobStatus.PAUSED)),
        )
        .values(status=status, error_message=error_message, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount > 0


async def _claim_pending(session: AsyncSession, job_id: uuid.UUID) -> uuid.UUID:
    run_token = uuid.uuid4()
    now = utcnow()
    result = await session.execute(
        update(GeocodingJob)
        .where(GeocodingJob.id == job_id, GeocodingJob.status == GeocodingJobStatus.PENDING)
        .values(status=GeocodingJobStatus.RUNNING, run_token=run_token, started_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    if result.rowcount == 0:
        raise await _state_error(session, job_id, GeocodingJobStatus.PENDING)
    return run_token


async def run_geocoding_job(
    session: AsyncSession,
    job_id: uuid.UUID,
    *,
    geocoder: BaseGeocoder,
    source: RecordSource,
    settings: Settings,
    run_token: uuid.UUID | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> GeocodingJob:
    """Execute a geocoding job until it completes, pauses, fails or loses its claim.

    Without ``run_token`` the worker claims a pending job. With a token (as
    issued by :func:`resume_geocoding_job`) it continues as that claim from
    ``offset = processed_records``.

    Args:
        session: Database session owned by this worker.
        job_id: The job to run.
        geocoder: Geocoder provider.
        source: Record source over the same session.
        settings: Retry, batch and escalation tuning.
        run_token: Claim issued by resume, if continuing a paused job.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        The job as persisted when the worker stopped.

    Raises:
        JobNotFoundError: If the job does not exist.
        JobStateError: If claiming and the job is not pending.
        Exception: Any unexpected error, after the job is marked failed.
    """
    if run_token is None:
        run_token = await _claim_pending(session, job_id)

    job = await _reload(session, job_id)
    scope = job.scope
    total = job.total_records
    offset = job.processed_records
    force_regeocode = job.force_regeocode
    max_transient = settings.geocoder_max_consecutive_transient_failures

    logger.info(f"Geocoding job {job_id} running over {scope.key} from {offset}/{total} using {geocoder.provider_name}")

    consecutive_transient = 0
    try:
        while offset < total:
            records = await source.page(scope, offset, settings.geocoder_batch_size)
            if not records:
                break

            for record in records:
                claim = (
                    await session.execute(
                        select(GeocodingJob.status, GeocodingJob.run_token).where(GeocodingJob.id == job_id)
                    )
                ).one_or_none()
                if claim is None:
                    raise JobNotFoundError(job_id)
                status, current_token = GeocodingJobStatus(claim.status), claim.run_token
                if current_token != run_token or status != GeocodingJobStatus.RUNNING:
                    logger.info(f"Geocoding job {job_id} stopping at {offset}/{total}: status is {status.value}")
                    await session.rollback()
                    return await _reload(session, job_id)

                outcome, transient = await _process_record(
                    record,
                    geocoder=geocoder,
                    source=source,
                    settings=settings,
                    force_regeocode=force_regeocode,
                    sleep=sleep,
                )
                consecutive_transient = consecutive_transient + 1 if transient else 0

                if not await _checkpoint(session, job_id, run_token, outcome):
                    logger.info(f"Geocoding job {job_id} run token superseded; worker exiting")
                    return await _reload(session, job_id)
                offset += 1

                if consecutive_transient >= max_transient:
                    msg = (
                        f"Geocoder {geocoder.provider_name} failed on {consecutive_transient} consecutive records; "
                        "provider appears to be unavailable"
                    )
                    raise SystemicGeocoderFailure(msg)

                if offset >= total:
                    break

        if not await _finish(session, job_id, run_token, GeocodingJobStatus.COMPLETED):
            logger.info(f"Geocoding job {job_id} run token superseded before completion; worker exiting")
            return await _reload(session, job_id)
        job = await _reload(session, job_id)
        job_events(job_id, "completed").info(
            f"Geocoding job {job_id} completed: {job.processed_records} processed, {job.geocoded_count} geocoded, "
            f"{job.failed_count} failed, {job.skipped_count} skipped"
        )
        return job

    except SystemicGeocoderFailure as e:
        if await _finish(session, job_id, run_token, GeocodingJobStatus.FAILED, error_message=str(e)):
            job_events(job_id, "failed").error(f"Geocoding job {job_id} failed: {e}")
        else:
            logger.info(f"Geocoding job {job_id} run token superseded before failing; worker exiting")
        return await _reload(session, job_id)

    except JobNotFoundError:
        raise

    except Exception as e:
        logger.exception(f"Geocoding job {job_id} failed unexpectedly")
        await session.rollback()
        await _finish(session, job_id, run_token, GeocodingJobStatus.FAILED, error_message=str(e) or type(e).__name__)
        raise


async def execute_geocoding_job(
    job_id: uuid.UUID,
    *,
    settings: Settings,
    run_token: uuid.UUID | None = None,
    geocoder: BaseGeocoder | None = None,
) -> GeocodingJob:
    """Run a job in a session of its own, for background tasks and the CLI."""
    async with open_session() as session:
        source = SqlRecordSource(session, settings.geocoder_region_suffix)
        return await run_geocoding_job(
            session,
            job_id,
            geocoder=geocoder or get_configured_geocoder(settings),
            source=source,
            settings=settings,
            run_token=run_token,
        )
