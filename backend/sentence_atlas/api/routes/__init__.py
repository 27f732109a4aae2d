"""Route exports for the API layer."""

from .projection import router as projection_router

__all__ = ["projection_router"]
