"""Process-wide async engine and session factory.

SQLAlchemy 2.x runs on asyncpg in production and aiosqlite for local runs and
tests. Background job workers and CLI commands open their own sessions
through ``open_session``; a request's session is never handed to a worker.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """The engine created by :func:`init_engine`; RuntimeError before that."""
    if _engine is None:
        msg = "Database engine not initialized; call init_engine() first"
        raise RuntimeError(msg)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """The session factory bound to :func:`get_engine`."""
    if _session_factory is None:
        msg = "Session factory not initialized; call init_engine() first"
        raise RuntimeError(msg)
    return _session_factory


def init_engine(database_url: str, *, schema: str | None = None, **kwargs: object) -> AsyncEngine:
    """Create the engine and session factory for this process.

    Args:
        database_url: Async SQLAlchemy URL (``postgresql+asyncpg://`` or ``sqlite+aiosqlite://``).
        schema: PostgreSQL schema put first on the ``search_path``.
        **kwargs: Passed through to ``create_async_engine``.

    Returns:
        The new engine.
    """
    global _engine, _session_factory  # noqa: PLW0603
    sqlite = database_url.startswith("sqlite")
    if schema is not None:
        connect_args = dict(kwargs.pop("connect_args", None) or {})  # type: ignore[call-overload]
        connect_args["options"] = f"-c search_path={schema},public"
        kwargs["connect_args"] = connect_args
    if sqlite and ":memory:" in database_url:
        # One shared connection, otherwise every session sees an empty database
        kwargs.setdefault("poolclass", StaticPool)
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    elif not sqlite:
        kwargs.setdefault("pool_size", 10)
        kwargs.setdefault("max_overflow", 5)
    _engine = create_async_engine(database_url, **kwargs)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


@asynccontextmanager
async def open_session() -> AsyncIterator[AsyncSession]:
    """Open a standalone session from the process-wide factory.

    Yields:
        A new AsyncSession, closed on exit.
    """
    factory = get_session_factory()
    async with factory() as session:
        yield session


async def create_all_tables() -> None:
    """Create every mapped table directly (development databases without Alembic)."""
    from voter_pipeline.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Dispose of the async engine and release connections."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
