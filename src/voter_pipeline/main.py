"""FastAPI application factory.

Creates the FastAPI app with lifespan management and exception handlers.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from voter_pipeline import __version__
from voter_pipeline.core.background import task_runner
from voter_pipeline.core.config import get_settings
from voter_pipeline.core.database import dispose_engine, init_engine
from voter_pipeline.core.logging import setup_logging
from voter_pipeline.lib.importer import ImportValidationError


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Init logging and the engine on startup; stop workers and dispose on shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    yield

    # Running jobs stay checkpointed in the database and can be resumed later
    await task_runner.shutdown()
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Voter Pipeline",
        description="Chunked voter-roll import and resumable batch geocoding",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(ImportValidationError)
    async def import_validation_error_handler(request: Request, exc: ImportValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    from voter_pipeline.api.router import create_router

    app.include_router(create_router(settings))

    return app
