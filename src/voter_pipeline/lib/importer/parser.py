"""Delimited-file reader with automatic delimiter/encoding detection.

Reads an SPR voter-roll export (comma, pipe or tab separated, UTF-8 or
Latin-1) into a :class:`Dataset` of raw string rows. Column interpretation
happens later, per row, in :mod:`voter_pipeline.lib.importer.validator`.
"""

from pathlib import Path

import pandas as pd
from loguru import logger

from voter_pipeline.lib.importer.types import Dataset, ImportValidationError

_ENCODINGS = ("utf-8-sig", "latin-1")
_DELIMITERS = (",", "|", "\t", ";")


def detect_encoding(file_path: Path) -> str:
    """Detect file encoding by attempting to read with common encodings.

    Args:
        file_path: Path to the delimited file.

    Returns:
        The detected encoding string.

    Raises:
        ImportValidationError: If encoding cannot be detected.
    """
    for encoding in _ENCODINGS:
        try:
            with file_path.open("r", encoding=encoding) as f:
                f.read(8192)
            return encoding
        except UnicodeDecodeError:
            continue
    msg = f"Cannot detect encoding for {file_path}"
    raise ImportValidationError(msg)


def detect_delimiter(file_path: Path, encoding: str) -> str:
    """Pick the delimiter that occurs most often in the header line.

    Raises:
        ImportValidationError: If the file is empty or no candidate appears.
    """
    with file_path.open("r", encoding=encoding) as f:
        first_line = f.readline()

    if not first_line.strip():
        msg = "File must have a header row and at least one data row"
        raise ImportValidationError(msg)

    counts = {d: first_line.count(d) for d in _DELIMITERS}
    delimiter = max(counts, key=counts.get)  # type: ignore[arg-type]
    if counts[delimiter] == 0:
        # A single-column file is legal; fall back to comma.
        delimiter = ","

    logger.debug(f"Detected delimiter: {delimiter!r} for {file_path}")
    return delimiter


def read_dataset(file_path: Path) -> Dataset:
    """Read a delimited file into a header plus raw rows.

    Every cell is kept as a string; missing cells become ``""``. Header names
    are stripped of surrounding whitespace.

    Args:
        file_path: Path to the file.

    Returns:
        The parsed dataset.

    Raises:
        ImportValidationError: If the file has no header or no data rows, or
            cannot be decoded.
    """
    encoding = detect_encoding(file_path)
    delimiter = detect_delimiter(file_path, encoding)

    logger.info(f"Reading {file_path} with delimiter={delimiter!r}, encoding={encoding}")

    try:
        frame = pd.read_csv(
            file_path,
            sep=delimiter,
            encoding=encoding,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError as e:
        msg = "File must have a header row and at least one data row"
        raise ImportValidationError(msg) from e
    except pd.errors.ParserError as e:
        msg = f"Cannot parse {file_path.name}: {e}"
        raise ImportValidationError(msg) from e

    frame = frame.fillna("")
    header = [str(c).strip() for c in frame.columns]
    if frame.empty:
        msg = "File must have a header row and at least one data row"
        raise ImportValidationError(msg)

    rows = [[str(v) for v in row] for row in frame.itertuples(index=False, name=None)]
    logger.info(f"Read {len(rows)} data rows with {len(header)} columns from {file_path.name}")
    return Dataset(header=header, rows=rows)
