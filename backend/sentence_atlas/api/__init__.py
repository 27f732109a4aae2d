"""API router composition for the backend.

The module assembles individual route groups into a single `api_router` that can be mounted on the app.
"""

from fastapi import APIRouter

from sentence_atlas.api.routes.projection import router as projection_router

api_router = APIRouter()
api_router.include_router(projection_router)

__all__ = ["api_router"]
