"""Fixtures for API integration tests: an app wired to the test database."""

from collections.abc import AsyncGenerator, Coroutine
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from voter_pipeline.api.router import create_router
from voter_pipeline.core.background import TaskState
from voter_pipeline.core.config import Settings
from voter_pipeline.core.dependencies import get_app_settings, get_async_session, get_task_runner


class RecordingTaskRunner:
    """Task runner double that records submissions without running them."""

    def __init__(self) -> None:
        self.names: list[str | None] = []

    def submit_task(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> str:
        coro.close()
        self.names.append(name)
        return f"task-{len(self.names)}"

    def get_state(self, task_id: str) -> TaskState:
        return TaskState.PENDING


@pytest.fixture
def task_runner() -> RecordingTaskRunner:
    return RecordingTaskRunner()


@pytest.fixture
def app(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    task_runner: RecordingTaskRunner,
) -> FastAPI:
    async def override_session() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app = FastAPI()
    app.include_router(create_router(settings))
    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_task_runner] = lambda: task_runner
    app.dependency_overrides[get_app_settings] = lambda: settings
    return app


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
