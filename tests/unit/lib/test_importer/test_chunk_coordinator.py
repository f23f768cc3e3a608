"""Unit tests for the chunked import coordinator."""

from dataclasses import dataclass, field

import pytest

from voter_pipeline.lib.importer import (
    ChunkedImportConfig,
    ChunkTransportError,
    Dataset,
    ImportBatchResult,
    ImportProgress,
    ImportSummary,
    ImportValidationError,
    MissingColumnsError,
    check_required_columns,
    run_chunked_import,
)


@dataclass
class Call:
    start_offset: int
    row_count: int
    skip_precondition_check: bool


@dataclass
class ScriptedImporter:
    """Row importer double; ``failures`` maps a start offset to the number of times it fails."""

    failures: dict[int, int] = field(default_factory=dict)
    app_failures: dict[int, int] = field(default_factory=dict)
    row_errors_per_chunk: int = 0
    calls: list[Call] = field(default_factory=list)

    async def import_chunk(
        self,
        scope_ref: object,
        header_map: dict[str, int],
        rows: list[list[str]],
        start_offset: int,
        skip_precondition_check: bool,
    ) -> ImportBatchResult:
        self.calls.append(Call(start_offset, len(rows), skip_precondition_check))
        if self.failures.get(start_offset, 0) > 0:
            self.failures[start_offset] -= 1
            msg = "Server returned HTTP 502"
            raise ChunkTransportError(msg)
        if self.app_failures.get(start_offset, 0) > 0:
            self.app_failures[start_offset] -= 1
            return ImportBatchResult(success=False, error="Invalid version ID")
        errors = [f"Row {start_offset + i + 1}: Name is required" for i in range(self.row_errors_per_chunk)]
        return ImportBatchResult(imported_count=len(rows) - len(errors), errors=errors)


def _dataset(row_count: int) -> Dataset:
    return Dataset(header=["NoKp", "Nama"], rows=[[f"{i:012d}", f"Pengundi {i}"] for i in range(row_count)])


class TestRequiredColumns:
    """Tests for check_required_columns()."""

    def test_all_present(self) -> None:
        check_required_columns(["NoKp", "Nama"], ("Nama",))

    def test_lists_every_missing_column(self) -> None:
        with pytest.raises(MissingColumnsError) as exc_info:
            check_required_columns(["NoKp"], ("Nama", "alamat"))
        assert exc_info.value.missing == ["Nama", "alamat"]
        assert str(exc_info.value) == "Missing required columns: Nama, alamat"


class TestChunkedImportConfig:
    """Tests for ChunkedImportConfig validation."""

    def test_defaults(self) -> None:
        config = ChunkedImportConfig()
        assert config.chunk_size == 250
        assert config.max_attempts == 3
        assert config.retry_base_delay == 1.0
        assert config.inter_chunk_delay == 0.1
        assert config.max_errors == 100

    @pytest.mark.parametrize("kwargs", [{"chunk_size": 0}, {"max_attempts": 0}])
    def test_rejects_non_positive(self, kwargs: dict) -> None:
        with pytest.raises(ValueError, match="must be positive"):
            ChunkedImportConfig(**kwargs)


class TestImportProgress:
    def test_percentage_is_floored(self) -> None:
        progress = ImportProgress(processed_rows=4250, total_rows=10_000, chunk_number=17, chunk_count=40)
        assert progress.percentage == 42

    def test_empty_total_is_complete(self) -> None:
        assert ImportProgress(processed_rows=0, total_rows=0, chunk_number=0, chunk_count=0).percentage == 100


class TestImportSummaryMessage:
    def test_no_errors(self) -> None:
        summary = ImportSummary(imported_count=10, errors=[], error_total=0, total_rows=10, chunk_count=1)
        assert summary.message == "10 imported, 0 errors"

    def test_with_errors_notes_cap(self) -> None:
        summary = ImportSummary(
            imported_count=8, errors=["a", "b"], error_total=2, total_rows=10, chunk_count=1, max_errors=100
        )
        assert summary.message == "8 imported, 2 errors (first 100 shown)"


class TestRunChunkedImport:
    """Tests for run_chunked_import()."""

    @pytest.mark.asyncio
    async def test_ten_thousand_rows_with_one_flaky_chunk(self, no_sleep) -> None:
        """Chunk 17 fails twice, succeeds on its third attempt; every row lands."""
        importer = ScriptedImporter(failures={16 * 250: 2})
        snapshots: list[ImportProgress] = []

        summary = await run_chunked_import(
            importer,
            "version-1",
            _dataset(10_000),
            ("Nama",),
            config=ChunkedImportConfig(),
            on_progress=snapshots.append,
            sleep=no_sleep,
        )

        assert summary.imported_count == 10_000
        assert summary.errors == []
        assert summary.error_total == 0
        assert summary.failed_chunks == 0
        assert summary.chunk_count == 40
        assert len(importer.calls) == 42

        assert len(snapshots) == 40
        after_chunk_17 = snapshots[16]
        assert after_chunk_17.processed_rows == 4250
        assert after_chunk_17.percentage == 42
        assert after_chunk_17.chunk_number == 17
        assert snapshots[-1].processed_rows == 10_000
        assert snapshots[-1].percentage == 100

        retry_delays = [d for d in no_sleep.delays if d != 0.1]
        assert retry_delays == [1.0, 2.0]
        assert no_sleep.delays.count(0.1) == 39
        assert no_sleep.delays[16:18] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_only_first_request_runs_precondition_check(self, no_sleep) -> None:
        importer = ScriptedImporter(failures={0: 1})

        await run_chunked_import(importer, "v", _dataset(600), ("Nama",), sleep=no_sleep)

        flags = [c.skip_precondition_check for c in importer.calls]
        # Both attempts at chunk 1 check; later chunks skip
        assert flags == [False, False, True, True]

    @pytest.mark.asyncio
    async def test_exhausted_chunk_is_recorded_and_run_continues(self, no_sleep) -> None:
        importer = ScriptedImporter(failures={250: 3})

        summary = await run_chunked_import(importer, "v", _dataset(600), ("Nama",), sleep=no_sleep)

        assert summary.imported_count == 350
        assert summary.failed_chunks == 1
        assert summary.error_total == 1
        assert summary.errors == ["Chunk 2 (rows 251-500): Server returned HTTP 502"]
        assert summary.message == "350 imported, 1 errors (first 100 shown)"
        # Three attempts at chunk 2, then chunk 3 still runs
        assert [c.start_offset for c in importer.calls] == [0, 250, 250, 250, 500]
        assert [d for d in no_sleep.delays if d != 0.1] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_application_failure_is_retried(self, no_sleep) -> None:
        importer = ScriptedImporter(app_failures={0: 1})

        summary = await run_chunked_import(importer, "v", _dataset(100), ("Nama",), sleep=no_sleep)

        assert summary.imported_count == 100
        assert summary.errors == []
        assert len(importer.calls) == 2

    @pytest.mark.asyncio
    async def test_persistent_application_failure_reports_reason(self, no_sleep) -> None:
        importer = ScriptedImporter(app_failures={0: 5})

        summary = await run_chunked_import(importer, "v", _dataset(10), ("Nama",), sleep=no_sleep)

        assert summary.imported_count == 0
        assert summary.errors == ["Chunk 1 (rows 1-10): Invalid version ID"]

    @pytest.mark.asyncio
    async def test_unexpected_importer_error_is_retried(self, no_sleep) -> None:
        importer = ScriptedImporter()
        original = importer.import_chunk
        raised: list[int] = []

        async def reset_once(*args: object, **kwargs: object) -> ImportBatchResult:
            start_offset = args[3]
            if start_offset == 0 and not raised:
                raised.append(start_offset)
                msg = "socket reset"
                raise ConnectionError(msg)
            return await original(*args, **kwargs)

        importer.import_chunk = reset_once  # type: ignore[method-assign]
        config = ChunkedImportConfig(chunk_size=5)

        summary = await run_chunked_import(importer, "v", _dataset(10), ("Nama",), config=config, sleep=no_sleep)

        assert summary.imported_count == 10
        assert summary.failed_chunks == 0
        assert summary.errors == []
        assert [c.start_offset for c in importer.calls] == [0, 5]

    @pytest.mark.asyncio
    async def test_persistent_unexpected_error_fails_only_its_chunk(self, no_sleep) -> None:
        importer = ScriptedImporter()
        original = importer.import_chunk

        async def broken_second_chunk(*args: object, **kwargs: object) -> ImportBatchResult:
            if args[3] == 5:
                msg = "'list' object has no attribute 'get'"
                raise AttributeError(msg)
            return await original(*args, **kwargs)

        importer.import_chunk = broken_second_chunk  # type: ignore[method-assign]
        config = ChunkedImportConfig(chunk_size=5)

        summary = await run_chunked_import(importer, "v", _dataset(15), ("Nama",), config=config, sleep=no_sleep)

        assert summary.imported_count == 10
        assert summary.failed_chunks == 1
        assert summary.errors == [
            "Chunk 2 (rows 6-10): AttributeError: 'list' object has no attribute 'get'"
        ]

    @pytest.mark.asyncio
    async def test_missing_column_sends_nothing(self, no_sleep) -> None:
        importer = ScriptedImporter()
        dataset = Dataset(header=["NoKp"], rows=[["800101125555"]])

        with pytest.raises(MissingColumnsError, match="Missing required column: Nama"):
            await run_chunked_import(importer, "v", dataset, ("Nama",), sleep=no_sleep)

        assert importer.calls == []

    @pytest.mark.asyncio
    async def test_empty_dataset_rejected(self, no_sleep) -> None:
        importer = ScriptedImporter()

        with pytest.raises(ImportValidationError, match="at least one data row"):
            await run_chunked_import(importer, "v", Dataset(header=["Nama"], rows=[]), ("Nama",), sleep=no_sleep)

        assert importer.calls == []

    @pytest.mark.asyncio
    async def test_error_list_is_bounded(self, no_sleep) -> None:
        importer = ScriptedImporter(row_errors_per_chunk=30)

        summary = await run_chunked_import(
            importer,
            "v",
            _dataset(500),
            ("Nama",),
            config=ChunkedImportConfig(chunk_size=100),
            sleep=no_sleep,
        )

        assert summary.error_total == 150
        assert len(summary.errors) == 100
        assert summary.errors[0] == "Row 1: Name is required"
        assert summary.imported_count == 350
        assert summary.message == "350 imported, 150 errors (first 100 shown)"

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_and_capped(self, no_sleep) -> None:
        snapshots: list[ImportProgress] = []

        await run_chunked_import(
            ScriptedImporter(), "v", _dataset(600), ("Nama",), on_progress=snapshots.append, sleep=no_sleep
        )

        assert [p.processed_rows for p in snapshots] == [250, 500, 600]
        assert [p.chunk_number for p in snapshots] == [1, 2, 3]
        assert all(p.chunk_count == 3 for p in snapshots)

    @pytest.mark.asyncio
    async def test_no_delay_after_last_chunk(self, no_sleep) -> None:
        await run_chunked_import(ScriptedImporter(), "v", _dataset(250), ("Nama",), sleep=no_sleep)
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_zero_inter_chunk_delay_never_sleeps(self, no_sleep) -> None:
        config = ChunkedImportConfig(chunk_size=10, inter_chunk_delay=0.0)

        await run_chunked_import(ScriptedImporter(), "v", _dataset(50), ("Nama",), config=config, sleep=no_sleep)

        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_chunks_cover_rows_in_order(self, no_sleep) -> None:
        importer = ScriptedImporter()

        await run_chunked_import(importer, "v", _dataset(600), ("Nama",), sleep=no_sleep)

        assert [(c.start_offset, c.row_count) for c in importer.calls] == [(0, 250), (250, 250), (500, 100)]
