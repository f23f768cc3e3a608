"""Liveness endpoint."""

from fastapi import APIRouter

from voter_pipeline import __version__

health_router = APIRouter(tags=["health"])


@health_router.get("/health", status_code=200)
async def health_check() -> dict:
    """Return service health status."""
    return {"status": "healthy", "version": __version__}
