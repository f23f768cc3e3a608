"""Root API router with the /api/v1 prefix."""

from fastapi import APIRouter

from voter_pipeline.core.config import Settings


def create_router(settings: Settings) -> APIRouter:
    """Create the root API router with all sub-routers included.

    Args:
        settings: Application settings.

    Returns:
        Configured API router.
    """
    from voter_pipeline.api.v1.geocoding import geocoding_router
    from voter_pipeline.api.v1.health import health_router
    from voter_pipeline.api.v1.imports import imports_router

    root_router = APIRouter(prefix=settings.api_v1_prefix)
    root_router.include_router(health_router)
    root_router.include_router(imports_router)
    root_router.include_router(geocoding_router)

    return root_router
