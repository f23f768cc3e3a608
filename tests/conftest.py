"""Shared test fixtures for the async database, sessions, settings and a stub geocoder."""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from voter_pipeline.core.config import Settings
from voter_pipeline.lib.geocoder import BaseGeocoder, GeocodeQuality, GeocodingResult
from voter_pipeline.models import Base, Voter, VoterVersion


@pytest.fixture
def settings() -> Settings:
    """Test application settings with retry delays and rate limits zeroed."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        import_retry_base_delay=0.0,
        import_inter_chunk_delay=0.0,
        geocoder_retry_base_delay=0.0,
        geocoder_batch_size=100,
    )


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine shared by every session in a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def voter_version(async_session: AsyncSession) -> VoterVersion:
    """An empty voter-roll version."""
    version = VoterVersion(name="SPR 2026 Q1")
    async_session.add(version)
    await async_session.commit()
    await async_session.refresh(version)
    return version


VoterSeeder = Callable[..., Awaitable[list[Voter]]]


@pytest.fixture
def seed_voters(async_session: AsyncSession, voter_version: VoterVersion) -> VoterSeeder:
    """Return a coroutine that inserts voters into ``voter_version``.

    Ids are sequential, so the record source's ``ORDER BY id`` matches the
    index ``i`` passed to the ``alamat`` and ``geocoded`` callables.
    """

    async def seed(
        count: int,
        *,
        version: VoterVersion | None = None,
        id_base: int = 1,
        alamat: Callable[[int], str | None] = lambda i: f"Jalan {i:04d}",
        geocoded: Callable[[int], bool] = lambda i: False,
    ) -> list[Voter]:
        target = version or voter_version
        voters = [
            Voter(
                id=uuid.UUID(int=(id_base << 32) + i + 1),
                version_id=target.id,
                row_key=f"row-{i + 1}",
                nama=f"Pengundi {i}",
                alamat=alamat(i),
                poskod="88000",
                daerah="Kota Kinabalu",
                lat=5.98 if geocoded(i) else None,
                lng=116.07 if geocoded(i) else None,
            )
            for i in range(count)
        ]
        async_session.add_all(voters)
        await async_session.commit()
        return voters

    return seed


def voter_address(i: int) -> str:
    """Query string built for a voter seeded with the default ``alamat``."""
    return f"Jalan {i:04d}, 88000, Kota Kinabalu, Sabah, Malaysia"


GeocodeHandler = Callable[[str, int], Awaitable[GeocodingResult | None]]


async def _always_match(address: str, call_number: int) -> GeocodingResult | None:
    return GeocodingResult(latitude=5.98, longitude=116.07, confidence_score=0.9, quality=GeocodeQuality.EXACT)


class StubGeocoder(BaseGeocoder):
    """Geocoder double that records every call and delegates to a handler."""

    def __init__(self, handler: GeocodeHandler = _always_match, rate_limit_delay: float = 0.0) -> None:
        self.handler = handler
        self.calls: list[str] = []
        self._rate_limit_delay = rate_limit_delay

    @property
    def provider_name(self) -> str:
        return "stub"

    @property
    def rate_limit_delay(self) -> float:
        return self._rate_limit_delay

    async def geocode(self, address: str) -> GeocodingResult | None:
        self.calls.append(address)
        return await self.handler(address, len(self.calls))


@pytest.fixture
def make_geocoder() -> type[StubGeocoder]:
    """The stub geocoder class, for tests that script provider behaviour."""
    return StubGeocoder


@pytest.fixture
def stub_geocoder() -> StubGeocoder:
    """A stub geocoder that matches every address with high confidence."""
    return StubGeocoder()


@pytest.fixture
def address_of() -> Callable[[int], str]:
    return voter_address


class RecordingSleep:
    """Sleep replacement that records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()
