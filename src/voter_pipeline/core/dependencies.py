"""FastAPI dependency injection for database sessions, settings and the background runner."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from voter_pipeline.core.background import BackgroundTaskRunner, task_runner
from voter_pipeline.core.config import Settings, get_settings
from voter_pipeline.core.database import get_session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Yield an async database session with per-request lifecycle."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


def get_task_runner() -> BackgroundTaskRunner:
    """Return the process-wide background task runner."""
    return task_runner


def get_app_settings() -> Settings:
    """Return application settings for request handlers."""
    return get_settings()
