"""Chunked import coordinator.

Splits a dataset into fixed-size chunks and hands each one to a
:class:`~voter_pipeline.lib.importer.types.RowImporter`, retrying failed chunks
with exponential backoff, publishing progress after every chunk and
aggregating a bounded error list. The coordinator is transport-agnostic: the
same loop drives the database importer, the HTTP importer, and test doubles.
"""

import asyncio
from collections.abc import Awaitable, Callable, Collection

from loguru import logger

from voter_pipeline.lib.importer.types import (
    ChunkedImportConfig,
    ChunkTransportError,
    Dataset,
    ImportBatchResult,
    ImportProgress,
    ImportSummary,
    ImportValidationError,
    MissingColumnsError,
    RowImporter,
)

ProgressCallback = Callable[[ImportProgress], None]
SleepFunc = Callable[[float], Awaitable[None]]


def check_required_columns(header: list[str], required_columns: Collection[str]) -> None:
    """Raise MissingColumnsError listing every required column absent from ``header``."""
    present = set(header)
    missing = [c for c in required_columns if c not in present]
    if missing:
        raise MissingColumnsError(missing)


async def _import_chunk_with_retry(
    importer: RowImporter,
    scope_ref: object,
    header_map: dict[str, int],
    rows: list[list[str]],
    start_offset: int,
    chunk_number: int,
    config: ChunkedImportConfig,
    sleep: SleepFunc,
) -> tuple[ImportBatchResult | None, str | None]:
    """Submit one chunk, retrying transport and application failures.

    Returns:
        ``(result, None)`` on success, or ``(None, reason)`` once all attempts
        are exhausted.
    """
    reason = "Unknown error"
    for attempt in range(config.max_attempts):
        try:
            result = await importer.import_chunk(
                scope_ref,
                header_map,
                rows,
                start_offset,
                skip_precondition_check=chunk_number > 1,
            )
        except ChunkTransportError as e:
            reason = str(e) or type(e).__name__
        except Exception as e:
            # Importer bugs and unwrapped client errors count against the chunk, not the run
            reason = f"{type(e).__name__}: {e}"
            logger.opt(exception=e).debug(f"Chunk {chunk_number} raised {type(e).__name__}")
        else:
            if result.success:
                return result, None
            reason = result.error or "Unknown error"

        if attempt < config.max_attempts - 1:
            delay = config.retry_base_delay * (2**attempt)
            logger.warning(
                f"Chunk {chunk_number} attempt {attempt + 1}/{config.max_attempts} failed: {reason}; "
                f"retrying in {delay:.1f}s"
            )
            await sleep(delay)

    return None, reason


async def run_chunked_import(
    importer: RowImporter,
    scope_ref: object,
    dataset: Dataset,
    required_columns: Collection[str],
    *,
    config: ChunkedImportConfig | None = None,
    on_progress: ProgressCallback | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> ImportSummary:
    """Import a dataset chunk by chunk.

    A chunk that still fails after ``config.max_attempts`` attempts contributes
    one range-level error line and the run moves on; a single bad chunk never
    aborts the import. Row-level errors reported by the importer are collected
    into the same bounded list.

    Args:
        importer: Persists chunks; must upsert so retries do not duplicate rows.
        scope_ref: Opaque target identifier passed through to the importer.
        dataset: Header plus raw data rows.
        required_columns: Columns that must be present in the header.
        config: Chunk size, retry and delay tuning.
        on_progress: Called after every chunk, before the next one starts.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        ImportSummary with the imported total and the first ``max_errors`` errors.

    Raises:
        MissingColumnsError: If a required column is absent. No chunk is sent.
        ImportValidationError: If the dataset has no data rows.
    """
    config = config or ChunkedImportConfig()
    check_required_columns(dataset.header, required_columns)

    total_rows = dataset.total_rows
    if total_rows == 0:
        msg = "File must have a header row and at least one data row"
        raise ImportValidationError(msg)

    header_map = dataset.header_map
    chunk_size = config.chunk_size
    chunk_count = (total_rows + chunk_size - 1) // chunk_size

    imported_count = 0
    errors: list[str] = []
    error_total = 0
    failed_chunks = 0

    def collect(messages: list[str]) -> None:
        nonlocal error_total
        error_total += len(messages)
        room = config.max_errors - len(errors)
        if room > 0:
            errors.extend(messages[:room])

    logger.info(f"Starting chunked import: {total_rows} rows in {chunk_count} chunks of {chunk_size}")

    for chunk_index, start in enumerate(range(0, total_rows, chunk_size)):
        chunk_number = chunk_index + 1
        rows = dataset.rows[start : start + chunk_size]

        result, failure = await _import_chunk_with_retry(
            importer, scope_ref, header_map, rows, start, chunk_number, config, sleep
        )

        if result is not None:
            imported_count += result.imported_count
            collect(result.errors)
            logger.info(
                f"Chunk {chunk_number}/{chunk_count}: imported {result.imported_count}, "
                f"{len(result.errors)} row errors"
            )
        else:
            failed_chunks += 1
            collect([f"Chunk {chunk_number} (rows {start + 1}-{start + len(rows)}): {failure}"])
            logger.error(f"Chunk {chunk_number}/{chunk_count} failed after {config.max_attempts} attempts: {failure}")

        progress = ImportProgress(
            processed_rows=min(start + chunk_size, total_rows),
            total_rows=total_rows,
            chunk_number=chunk_number,
            chunk_count=chunk_count,
        )
        if on_progress is not None:
            on_progress(progress)

        if chunk_number < chunk_count and config.inter_chunk_delay > 0:
            await sleep(config.inter_chunk_delay)

    summary = ImportSummary(
        imported_count=imported_count,
        errors=errors,
        error_total=error_total,
        total_rows=total_rows,
        chunk_count=chunk_count,
        failed_chunks=failed_chunks,
        max_errors=config.max_errors,
    )
    logger.info(f"Chunked import finished: {summary.message}")
    return summary
