"""API endpoint modules for version 1."""

from .contributions import router as contributions_router
from .verification import router as verification_router

__all__ = [
    "contributions_router",
    "verification_router",
]
