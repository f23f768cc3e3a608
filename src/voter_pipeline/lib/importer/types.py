"""Data types and errors shared by the chunked import coordinator and row importers."""

from dataclasses import dataclass, field
from typing import Protocol


class ImportValidationError(ValueError):
    """Whole-run error: the dataset cannot be imported at all.

    Raised before any chunk is sent.
    """


class MissingColumnsError(ImportValidationError):
    """The header lacks one or more required columns."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        noun = "column" if len(missing) == 1 else "columns"
        super().__init__(f"Missing required {noun}: {', '.join(missing)}")


class RowError(ValueError):
    """A single malformed row; recorded and skipped, the run continues.

    The message is row-scoped and human-readable, e.g. ``Row 12: Name is required``.
    """

    def __init__(self, row_number: int, reason: str) -> None:
        self.row_number = row_number
        self.reason = reason
        super().__init__(f"Row {row_number}: {reason}")


class ChunkTransportError(Exception):
    """A chunk could not be delivered or committed; the coordinator retries it."""


@dataclass
class Dataset:
    """A delimited dataset split into its header and raw data rows."""

    header: list[str]
    rows: list[list[str]]

    @property
    def header_map(self) -> dict[str, int]:
        """Column name -> column index."""
        return {name: idx for idx, name in enumerate(self.header)}

    @property
    def total_rows(self) -> int:
        return len(self.rows)


@dataclass
class ImportBatchResult:
    """Outcome of importing one chunk.

    ``success=False`` is an application-level chunk failure (e.g. the target
    version no longer exists) and is retried like a transport error.
    """

    imported_count: int = 0
    errors: list[str] = field(default_factory=list)
    success: bool = True
    error: str | None = None


@dataclass(frozen=True)
class ImportProgress:
    """Progress snapshot published after every chunk."""

    processed_rows: int
    total_rows: int
    chunk_number: int
    chunk_count: int

    @property
    def percentage(self) -> int:
        if self.total_rows == 0:
            return 100
        return self.processed_rows * 100 // self.total_rows


@dataclass
class ImportSummary:
    """Final result of a chunked import run."""

    imported_count: int
    errors: list[str]
    error_total: int
    total_rows: int
    chunk_count: int
    failed_chunks: int = 0
    max_errors: int = 100

    @property
    def message(self) -> str:
        text = f"{self.imported_count} imported, {self.error_total} errors"
        if self.error_total:
            text += f" (first {self.max_errors} shown)"
        return text


@dataclass(frozen=True)
class ChunkedImportConfig:
    """Tuning constants for the chunk loop."""

    chunk_size: int = 250
    max_attempts: int = 3
    retry_base_delay: float = 1.0
    inter_chunk_delay: float = 0.1
    max_errors: int = 100

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            msg = f"chunk_size must be positive, got {self.chunk_size}"
            raise ValueError(msg)
        if self.max_attempts <= 0:
            msg = f"max_attempts must be positive, got {self.max_attempts}"
            raise ValueError(msg)


class RowImporter(Protocol):
    """Persists one chunk of raw rows.

    Implementations must tolerate the same row range being submitted more than
    once (retries), i.e. they upsert.
    """

    async def import_chunk(
        self,
        scope_ref: object,
        header_map: dict[str, int],
        rows: list[list[str]],
        start_offset: int,
        skip_precondition_check: bool,
    ) -> ImportBatchResult:
        """Import ``rows``; ``start_offset`` is the zero-based index of the first row."""
        ...
