"""Version 1 API endpoints."""

from .endpoints import contributions_router, verification_router

__all__ = [
    "contributions_router",
    "verification_router",
]
