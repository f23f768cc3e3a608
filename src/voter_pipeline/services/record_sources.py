"""Record sources — the rows a geocoding job scans, per scope kind.

Every source exposes a stable ``ORDER BY id`` ordering over *all* records in
the scope, geocoded or not, so that ``processed_records`` is always a valid
offset to resume from.
"""

from typing import Any, Protocol

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from voter_pipeline.lib.geocoder import (
    DEFAULT_REGION_SUFFIX,
    GeocodingResult,
    build_locality_address,
    build_parliament_address,
    build_voter_address,
)
from voter_pipeline.models import GeocodingScope, Locality, Parliament, ScopeKind, Voter, VoterVersion
from voter_pipeline.models.base import utcnow

GeocodableRecord = Voter | Parliament | Locality


class RecordSource(Protocol):
    """What the job engine needs from a record store."""

    async def scope_exists(self, scope: GeocodingScope) -> bool: ...

    async def count(self, scope: GeocodingScope) -> int: ...

    async def page(self, scope: GeocodingScope, offset: int, limit: int) -> list[Any]: ...

    def address_for(self, record: Any) -> str | None: ...

    def has_coordinates(self, record: Any) -> bool: ...

    def store_coordinates(self, record: Any, result: GeocodingResult) -> None: ...


class SqlRecordSource:
    """Record source over the voters, parliaments and localities tables.

    Coordinate writes are staged on the session; the job engine commits them
    together with its counter update.
    """

    def __init__(self, session: AsyncSession, region_suffix: str = DEFAULT_REGION_SUFFIX) -> None:
        self._session = session
        self._region_suffix = region_suffix

    @staticmethod
    def _model_and_filter(
        scope: GeocodingScope,
    ) -> tuple[type[Voter] | type[Parliament] | type[Locality], ColumnElement[bool] | None]:
        match scope.kind:
            case ScopeKind.VOTER_VERSION:
                return Voter, Voter.version_id == scope.ref
            case ScopeKind.PARLIAMENT_SET:
                return Parliament, None
            case ScopeKind.LOCALITY_SET:
                return Locality, None

    async def scope_exists(self, scope: GeocodingScope) -> bool:
        match scope.kind:
            case ScopeKind.VOTER_VERSION:
                return await self._session.get(VoterVersion, scope.ref) is not None
            case ScopeKind.PARLIAMENT_SET | ScopeKind.LOCALITY_SET:
                return True

    async def count(self, scope: GeocodingScope) -> int:
        model, criterion = self._model_and_filter(scope)
        query = select(func.count()).select_from(model)
        if criterion is not None:
            query = query.where(criterion)
        result = await self._session.execute(query)
        return result.scalar_one()

    async def page(self, scope: GeocodingScope, offset: int, limit: int) -> list[GeocodableRecord]:
        model, criterion = self._model_and_filter(scope)
        query = select(model)
        if criterion is not None:
            query = query.where(criterion)
        query = query.order_by(model.id).offset(offset).limit(limit)
        result = await self._session.execute(query)
        return list(result.scalars().all())

    def address_for(self, record: GeocodableRecord) -> str | None:
        match record:
            case Voter():
                return build_voter_address(
                    record.no_rumah, record.alamat, record.poskod, record.daerah, self._region_suffix
                )
            case Parliament():
                return build_parliament_address(record.name, self._region_suffix)
            case Locality():
                return build_locality_address(record.name, record.code, self._region_suffix)
            case _:
                msg = f"Unsupported record type: {type(record).__name__}"
                raise TypeError(msg)

    def has_coordinates(self, record: GeocodableRecord) -> bool:
        return record.lat is not None and record.lng is not None

    def store_coordinates(self, record: GeocodableRecord, result: GeocodingResult) -> None:
        record.lat = result.latitude
        record.lng = result.longitude
        record.geocoded_at = utcnow()
