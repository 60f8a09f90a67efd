# src/tourhub/main.py
"""Main entry point for the tourhub application.

``app`` is the FastAPI application; ``asgi_app`` wraps it with the Socket.IO
server and is what the process should serve.
"""

from __future__ import annotations

import logging
from pathlib import Path

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles

from tourhub.api.v1 import messages_router
from tourhub.core.settings import settings
from tourhub.db.session import create_tables, engine
from tourhub.realtime.adapter import build_client_manager
from tourhub.realtime.gateway import RealtimeGateway

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Tour booking platform API: direct messaging and realtime delivery",
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
app.include_router(messages_router)

app.mount(
    settings.media_base_url,
    StaticFiles(directory=settings.media_root, check_dir=False),
    name="media",
)

# Realtime server; falls back to the in-process manager when the relay is unavailable.
sio = socketio.AsyncServer(
    async_mode="asgi",
    client_manager=build_client_manager(engine),
    cors_allowed_origins=settings.cors_origins,
    logger=False,
    engineio_logger=False,
)
gateway = RealtimeGateway(sio)
app.state.gateway = gateway

asgi_app = socketio.ASGIApp(sio, other_asgi_app=app, socketio_path=settings.realtime_path)


@app.on_event("startup")
async def on_startup() -> None:
    Path(settings.media_root).mkdir(parents=True, exist_ok=True)
    if settings.auto_create_tables:
        create_tables()
    logger.info("%s %s started", settings.app_name, settings.app_version)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    gateway.shutdown()


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
        "message": "API is working",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("tourhub.main:asgi_app", host="0.0.0.0", port=8000, reload=settings.debug)
