"""Importer library — chunked, retrying import of delimited voter-roll files.

Public API:
    - run_chunked_import: Drive a RowImporter chunk by chunk with retry and progress
    - read_dataset: Read a delimited file into header + raw rows
    - parse_voter_row: Map one SPR row to Voter fields
    - HttpRowImporter: RowImporter that posts chunks to a remote server
    - Dataset, ImportBatchResult, ImportProgress, ImportSummary, ChunkedImportConfig
    - ImportValidationError, MissingColumnsError, RowError, ChunkTransportError
"""

from voter_pipeline.lib.importer.coordinator import check_required_columns, run_chunked_import
from voter_pipeline.lib.importer.http_importer import HttpRowImporter
from voter_pipeline.lib.importer.parser import read_dataset
from voter_pipeline.lib.importer.types import (
    ChunkedImportConfig,
    ChunkTransportError,
    Dataset,
    ImportBatchResult,
    ImportProgress,
    ImportSummary,
    ImportValidationError,
    MissingColumnsError,
    RowError,
    RowImporter,
)
from voter_pipeline.lib.importer.validator import REQUIRED_VOTER_COLUMNS, parse_voter_row

__all__ = [
    "REQUIRED_VOTER_COLUMNS",
    "ChunkTransportError",
    "ChunkedImportConfig",
    "Dataset",
    "HttpRowImporter",
    "ImportBatchResult",
    "ImportProgress",
    "ImportSummary",
    "ImportValidationError",
    "MissingColumnsError",
    "RowError",
    "RowImporter",
    "check_required_columns",
    "parse_voter_row",
    "read_dataset",
    "run_chunked_import",
]
