# src/wiki_contrib/main.py
"""Main entry point for the wiki contribution service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from wiki_contrib.api.v1 import contributions_router, verification_router
from wiki_contrib.api.v1.dependencies import close_hosting_gateway
from wiki_contrib.core.settings import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Initialize FastAPI app
app = FastAPI(
    title=f"{settings.app_name} API",
    description="Anonymous, reviewed wiki contributions",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(verification_router, prefix="/api/v1")
app.include_router(contributions_router, prefix="/api/v1")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await close_hosting_gateway()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": f"{settings.app_name} API",
        "version": settings.app_version,
        "description": "Anonymous, reviewed wiki contributions",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("wiki_contrib.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
