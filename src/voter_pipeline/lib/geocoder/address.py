"""Build geocoder query strings from voter, parliament and locality fields.

Each builder returns ``None`` when the record lacks its primary field, which
the job engine counts as a skipped record rather than a failed lookup.
"""

DEFAULT_REGION_SUFFIX = "Sabah, Malaysia"


def _join(parts: list[str | None], region_suffix: str) -> str:
    cleaned = [p.strip() for p in parts if p and p.strip()]
    if region_suffix:
        cleaned.append(region_suffix)
    return ", ".join(cleaned)


def build_voter_address(
    no_rumah: str | None,
    alamat: str | None,
    poskod: str | None,
    daerah: str | None,
    region_suffix: str = DEFAULT_REGION_SUFFIX,
) -> str | None:
    """House number, street address, postcode and district, then the region.

    Returns None if ``alamat`` is blank.
    """
    if not alamat or not alamat.strip():
        return None
    return _join([no_rumah, alamat, poskod, daerah], region_suffix)


def build_parliament_address(name: str | None, region_suffix: str = DEFAULT_REGION_SUFFIX) -> str | None:
    if not name or not name.strip():
        return None
    return _join([name], region_suffix)


def build_locality_address(
    name: str | None, code: str | None, region_suffix: str = DEFAULT_REGION_SUFFIX
) -> str | None:
    if not name or not name.strip():
        return None
    return _join([name, code], region_suffix)
