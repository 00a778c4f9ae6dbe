"""
Route package initialization.
"""
from .listings import router as listings_router
from .progress import router as progress_router

__all__ = ["listings_router", "progress_router"]
