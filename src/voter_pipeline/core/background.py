"""Background task runner abstraction.

Geocoding jobs outlive the request that starts or resumes them, so the API
hands the worker coroutine to a runner and returns immediately.  The durable
state of a job lives in its database row; the runner only tracks the asyncio
task that is currently executing it.
"""

import asyncio
import enum
import uuid
from collections.abc import Coroutine
from typing import Any, Protocol

from loguru import logger


class TaskState(enum.StrEnum):
    """State of an in-process background task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BackgroundTaskRunner(Protocol):
    """Protocol for background task execution."""

    def submit_task(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.
            name: Optional label used in log messages.

        Returns:
            A task ID string for tracking.
        """
        ...

    def get_state(self, task_id: str) -> TaskState:
        """Get the current state of a background task."""
        ...


class InProcessTaskRunner:
    """In-process background task runner using asyncio.

    Tasks run in the same process as the API server using
    ``asyncio.create_task()``.  Because every geocoding job checkpoints to the
    database, a task lost to a process restart is recovered by resuming its job.
    """

    def __init__(self) -> None:
        self._states: dict[str, TaskState] = {}
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    def submit_task(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.
            name: Optional label used in log messages.

        Returns:
            A task ID string for tracking.
        """
        task_id = str(uuid.uuid4())
        label = name or task_id
        self._states[task_id] = TaskState.PENDING

        async def _run() -> None:
            self._states[task_id] = TaskState.RUNNING
            try:
                await coro
                self._states[task_id] = TaskState.COMPLETED
            except Exception:
                self._states[task_id] = TaskState.FAILED
                logger.exception(f"Background task {label} failed")
                raise
            finally:
                self._tasks.pop(task_id, None)

        self._tasks[task_id] = asyncio.create_task(_run(), name=label)
        return task_id

    def get_state(self, task_id: str) -> TaskState:
        """Get the current state of a background task.

        Raises:
            KeyError: If the task ID is not found.
        """
        return self._states[task_id]

    @property
    def active_count(self) -> int:
        """Number of tasks that have not finished yet."""
        return len(self._tasks)

    async def shutdown(self) -> None:
        """Cancel every unfinished task and wait for them to unwind."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} background task(s) on shutdown")


# Singleton instance for the application
task_runner = InProcessTaskRunner()
