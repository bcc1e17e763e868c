"""
MJPEG Relay Main Application
============================

FastAPI entry point. The application lifespan owns the Relay: it is built
from settings on startup and stopped on shutdown. Subscribers connect to
the relay's own WebSocket port, not to this app.

Endpoints:
    GET  /          - Service information
    GET  /health    - Liveness probe (is process alive?)
    GET  /ready     - Readiness probe (upstream streaming?)
    GET  /metrics   - Pipeline counters
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mjpeg_relay.config import settings
from mjpeg_relay.relay import Relay
from mjpeg_relay.stream import ReaderState


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_relay: Optional[Relay] = None
_startup_time: float = time.time()


def get_relay() -> Optional[Relay]:
    return _relay


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _relay, _startup_time

    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")
    logger.info(f"Upstream URL: {settings.upstream.url}")

    _relay = Relay.from_settings(settings)
    await _relay.start()

    yield

    logger.info("Shutting down gracefully...")
    await _relay.stop()
    _relay = None
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="MJPEG Relay",
    description="Relays an MJPEG camera stream to WebSocket subscribers",
    version=settings.service.version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": settings.service.name,
        "version": settings.service.version,
        "status": "running" if _relay is not None else "idle",
        "upstream_url": settings.upstream.url,
        "broadcast_port": settings.broadcast.port,
        "min_frame_interval_ms": settings.upstream.min_frame_interval_ms,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - is the upstream camera streaming?

    Returns 200 while the reader is STREAMING, 503 otherwise.
    """
    relay = get_relay()
    state = relay.reader.state if relay else ReaderState.IDLE
    subscribers = len(relay.registry) if relay else 0

    if state is ReaderState.STREAMING:
        return JSONResponse({
            "status": "ready",
            "reader_state": state.value,
            "subscribers": subscribers,
        })

    return JSONResponse(
        {
            "status": "not_ready",
            "reader_state": state.value,
            "subscribers": subscribers,
        },
        status_code=503,
    )


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    relay = get_relay()

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        **(relay.metrics() if relay else {"reader_state": ReaderState.IDLE.value}),
    })


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "mjpeg_relay.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
