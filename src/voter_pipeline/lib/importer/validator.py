"""SPR voter-roll row validation and field mapping."""

import contextlib
from datetime import date, timedelta
from typing import Any

from dateutil import parser as date_parser

from voter_pipeline.lib.importer.types import RowError

REQUIRED_VOTER_COLUMNS: tuple[str, ...] = ("Nama",)

# SPR export header -> Voter model field, for plain string fields
SPR_COLUMN_MAP: dict[str, str] = {
    "NoKp": "no_kp",
    "NoKpLama": "no_kp_lama",
    "NoHP": "no_hp",
    "Jantina": "jantina",
    "Bangsa": "bangsa",
    "agama": "agama",
    "Kategorikaum": "kategori_kaum",
    "NoRumah": "no_rumah",
    "alamat": "alamat",
    "poskod": "poskod",
    "daerah": "daerah",
    "KodLokaliti": "kod_lokaliti",
    "NamaParlimen": "nama_parlimen",
    "NamaDun": "nama_dun",
    "NamaPDM": "nama_pdm",
    "NamaLokaliti": "nama_lokaliti",
    "KategoriUNDI": "kategori_undi",
    "NamaTM": "nama_tm",
    "MasaUndi": "masa_undi",
}

# Serial day numbers above this are Excel dates (25569 == 1970-01-01)
_EXCEL_SERIAL_THRESHOLD = 25569
_EXCEL_EPOCH = date(1899, 12, 30)


def _cell(header_map: dict[str, int], values: list[str], column: str) -> str | None:
    idx = header_map.get(column)
    if idx is None or idx >= len(values):
        return None
    value = values[idx].strip()
    return value or None


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        try:
            return int(float(value))
        except (ValueError, OverflowError):
            return None


def parse_date_of_birth(value: str | None) -> date | None:
    """Parse a TarikhLahir cell.

    Integral values above the Excel threshold are treated as Excel serial day
    numbers; anything else is parsed as a free-form date string. Unparseable
    values yield ``None`` rather than failing the row.
    """
    if value is None:
        return None

    if value.isdecimal() and int(value) > _EXCEL_SERIAL_THRESHOLD:
        try:
            return _EXCEL_EPOCH + timedelta(days=int(value))
        except OverflowError:
            return None

    with contextlib.suppress(ValueError):
        return date.fromisoformat(value)

    # SPR exports write dates day-first (DD/MM/YYYY)
    try:
        return date_parser.parse(value, dayfirst=True).date()
    except (ValueError, OverflowError):
        return None


def parse_voter_row(header_map: dict[str, int], values: list[str], row_number: int) -> dict[str, Any]:
    """Map one raw SPR row to Voter column values.

    Args:
        header_map: Column name to index.
        values: Raw cell values of the row.
        row_number: 1-based data row number, used for error messages and as
            the row key when the row has no IC number.

    Returns:
        Dict of Voter field values including ``row_key``.

    Raises:
        RowError: If the row has no name.
    """
    nama = _cell(header_map, values, "Nama")
    if nama is None:
        raise RowError(row_number, "Name is required")

    record: dict[str, Any] = {field: _cell(header_map, values, column) for column, field in SPR_COLUMN_MAP.items()}
    record["nama"] = nama
    record["no_siri"] = _parse_int(_cell(header_map, values, "NoSiri"))
    record["saluran"] = _parse_int(_cell(header_map, values, "Saluran"))
    record["tarikh_lahir"] = parse_date_of_birth(_cell(header_map, values, "TarikhLahir"))
    record["row_key"] = record["no_kp"] or f"row-{row_number}"
    return record
