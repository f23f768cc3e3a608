"""Import service — voter-roll versions and the database-backed chunk importer.

Each chunk is validated row by row, then upserted in bulk on
``(version_id, row_key)`` so that a retried chunk overwrites rather than
duplicates. If the bulk statement fails, the chunk falls back to one
statement per row and each failing row becomes a row error.
"""

import uuid
from typing import Any

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from voter_pipeline.lib.importer import ChunkTransportError, ImportBatchResult, RowError, parse_voter_row
from voter_pipeline.models import Voter, VoterVersion
from voter_pipeline.models.base import utcnow

# Row errors kept per chunk
MAX_CHUNK_ERRORS = 100

# Rows per INSERT statement, well inside asyncpg's 32,767 parameter limit
_UPSERT_SUB_BATCH = 1000

# Never overwritten when a row is re-imported
_UPSERT_EXCLUDE_COLUMNS = frozenset({"id", "version_id", "row_key", "created_at"})


async def create_voter_version(
    session: AsyncSession,
    *,
    name: str,
    description: str | None = None,
) -> VoterVersion:
    """Create a new voter-roll version.

    Raises:
        ValueError: If the name is blank or already used.
    """
    name = name.strip()
    if not name:
        msg = "Version name is required"
        raise ValueError(msg)

    version = VoterVersion(name=name, description=(description or "").strip() or None)
    session.add(version)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        msg = f"Voter version {name!r} already exists"
        raise ValueError(msg) from e
    await session.refresh(version)
    logger.info(f"Created voter version {version.id} ({name})")
    return version


async def get_voter_version(session: AsyncSession, version_id: uuid.UUID) -> VoterVersion | None:
    """Get a voter-roll version by ID, or None."""
    result = await session.execute(select(VoterVersion).where(VoterVersion.id == version_id))
    return result.scalar_one_or_none()


async def list_voter_versions(session: AsyncSession) -> list[tuple[VoterVersion, int]]:
    """List all versions, newest first, each with its voter count."""
    query = (
        select(VoterVersion, func.count(Voter.id))
        .outerjoin(Voter, Voter.version_id == VoterVersion.id)
        .group_by(VoterVersion.id)
        .order_by(VoterVersion.created_at.desc())
    )
    result = await session.execute(query)
    return [(version, count) for version, count in result.all()]


async def clear_version_voters(session: AsyncSession, version_id: uuid.UUID) -> int:
    """Delete every voter of a version, ahead of a clean re-import.

    Returns:
        Number of rows deleted.

    Raises:
        ValueError: If the version does not exist.
    """
    if await get_voter_version(session, version_id) is None:
        msg = f"Voter version {version_id} not found"
        raise ValueError(msg)
    result = await session.execute(delete(Voter).where(Voter.version_id == version_id))
    await session.commit()
    logger.info(f"Cleared {result.rowcount} voters from version {version_id}")
    return result.rowcount


async def _upsert_voter_batch(session: AsyncSession, records: list[dict[str, Any]]) -> int:
    """Bulk upsert voter records with INSERT ... ON CONFLICT DO UPDATE.

    Uses the ``(version_id, row_key)`` unique constraint as the conflict
    target. Works on PostgreSQL and SQLite.

    Returns:
        Number of rows written.
    """
    if not records:
        return 0

    insert = pg_insert if session.bind.dialect.name == "postgresql" else sqlite_insert
    update_columns = sorted(set(records[0].keys()) - _UPSERT_EXCLUDE_COLUMNS)

    written = 0
    for i in range(0, len(records), _UPSERT_SUB_BATCH):
        batch = records[i : i + _UPSERT_SUB_BATCH]
        stmt = insert(Voter).values(batch)
        stmt = stmt.on_conflict_do_update(
            index_elements=["version_id", "row_key"],
            set_={col: stmt.excluded[col] for col in update_columns},
        )
        await session.execute(stmt)
        written += len(batch)
    return written


class VoterRowImporter:
    """Database-backed row importer for one request or CLI run."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _prepare(
        self,
        version_id: uuid.UUID,
        header_map: dict[str, int],
        rows: list[list[str]],
        start_offset: int,
    ) -> tuple[list[tuple[int, dict[str, Any]]], list[str]]:
        """Validate rows into upsert records keyed by row number."""
        records: dict[str, tuple[int, dict[str, Any]]] = {}
        errors: list[str] = []
        now = utcnow()

        for i, values in enumerate(rows):
            row_number = start_offset + i + 1
            if not any(v.strip() for v in values):
                continue
            try:
                record = parse_voter_row(header_map, values, row_number)
            except RowError as e:
                errors.append(str(e))
                continue
            record.update(id=uuid.uuid4(), version_id=version_id, created_at=now, updated_at=now)
            # A repeated IC number within one chunk keeps the last row
            records[record["row_key"]] = (row_number, record)

        return list(records.values()), errors

    async def import_chunk(
        self,
        scope_ref: object,
        header_map: dict[str, int],
        rows: list[list[str]],
        start_offset: int,
        skip_precondition_check: bool,
    ) -> ImportBatchResult:
        """Validate and upsert one chunk of raw rows into a voter version.

        Args:
            scope_ref: Target voter version id.
            header_map: Column name to index.
            rows: Raw rows.
            start_offset: Zero-based index of the chunk's first row.
            skip_precondition_check: Skip the version-exists check.

        Returns:
            ImportBatchResult; ``success=False`` when the version is missing.

        Raises:
            ChunkTransportError: On database errors other than bad rows.
        """
        version_id = scope_ref if isinstance(scope_ref, uuid.UUID) else uuid.UUID(str(scope_ref))

        if not skip_precondition_check:
            try:
                version = await get_voter_version(self._session, version_id)
            except SQLAlchemyError as e:
                await self._session.rollback()
                msg = f"Database error: {type(e).__name__}"
                raise ChunkTransportError(msg) from e
            if version is None:
                return ImportBatchResult(success=False, error="Invalid version ID")

        prepared, errors = self._prepare(version_id, header_map, rows, start_offset)
        records = [record for _, record in prepared]

        try:
            imported = await _upsert_voter_batch(self._session, records)
            await self._session.commit()
        except (IntegrityError, DataError) as e:
            await self._session.rollback()
            logger.warning(f"Bulk upsert failed for rows {start_offset + 1}+, falling back to single rows: {e.orig}")
            imported = await self._upsert_one_by_one(prepared, errors)
        except SQLAlchemyError as e:
            await self._session.rollback()
            msg = f"Database error: {type(e).__name__}"
            raise ChunkTransportError(msg) from e

        logger.debug(f"Chunk at offset {start_offset}: {imported} upserted, {len(errors)} row errors")
        return ImportBatchResult(imported_count=imported, errors=errors[:MAX_CHUNK_ERRORS])

    async def _upsert_one_by_one(self, prepared: list[tuple[int, dict[str, Any]]], errors: list[str]) -> int:
        imported = 0
        for row_number, record in prepared:
            try:
                await _upsert_voter_batch(self._session, [record])
                await self._session.commit()
            except (IntegrityError, DataError) as e:
                await self._session.rollback()
                errors.append(str(RowError(row_number, str(e.orig))))
            except SQLAlchemyError as e:
                await self._session.rollback()
                msg = f"Database error: {type(e).__name__}"
                raise ChunkTransportError(msg) from e
            else:
                imported += 1
        return imported
