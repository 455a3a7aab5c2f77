# src/clearlot_relay/main.py
"""Main entry point for the Clearlot Relay application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from clearlot_relay.api.v1 import (
    conversations_router,
    events_router,
    messages_router,
    notifications_router,
    reminders_router,
    streams_router,
)
from clearlot_relay.core.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    TransientStoreError,
)
from clearlot_relay.core.settings import settings
from clearlot_relay.services.blob_store import BlobStoreError
from clearlot_relay.services.runtime import get_services

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Conversations, notifications and delivery reminders for the Clearlot marketplace",
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
app.include_router(conversations_router, prefix="/api/v1")
app.include_router(messages_router, prefix="/api/v1")
app.include_router(notifications_router, prefix="/api/v1")
app.include_router(events_router, prefix="/api/v1")
app.include_router(reminders_router, prefix="/api/v1")
app.include_router(streams_router, prefix="/api/v1")


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(PermissionDeniedError)
async def handle_permission_denied(request: Request, exc: PermissionDeniedError) -> JSONResponse:
    return _error(status.HTTP_403_FORBIDDEN, exc)


@app.exception_handler(InvalidStateError)
async def handle_invalid_state(request: Request, exc: InvalidStateError) -> JSONResponse:
    return _error(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(TransientStoreError)
async def handle_transient(request: Request, exc: TransientStoreError) -> JSONResponse:
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc)


@app.exception_handler(BlobStoreError)
async def handle_blob_store(request: Request, exc: BlobStoreError) -> JSONResponse:
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc)


@app.on_event("startup")
async def on_startup() -> None:
    await get_services().startup()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await get_services().shutdown()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Conversations, notifications and delivery reminders",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("clearlot_relay.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
