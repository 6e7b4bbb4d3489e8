"""
RideTracker Live API - Main Application
=======================================

FastAPI application entry point with middleware configuration
and route registration.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import newrelic.agent

# Configure logging for the application (root logger defaults to WARNING)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.core.errors import setup_exception_handlers
from app.dependencies import Hub
from app.schemas import ErrorResponse
from app.services.stream_hub import build_stream_hub

logger = logging.getLogger(__name__)

# Path parameters that identify the stream or ride a request targets
_STREAM_KEY_PARAMS = ("stream_id", "ride_id")


# =============================================================================
# New Relic Transaction Enrichment Middleware (Raw ASGI)
# =============================================================================

class NewRelicTransactionMiddleware:
    """
    Raw ASGI middleware that enriches every New Relic transaction with
    custom attributes for better filtering, alerting, and dashboarding.

    Uses raw ASGI instead of BaseHTTPMiddleware to preserve the async
    context chain.  BaseHTTPMiddleware's ``call_next()`` runs the route
    handler in a separate task, which breaks New Relic's contextvars-based
    span propagation.

    Captures: response status, latency, HTTP method, route pattern, and
    the stream or ride id the request targets.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500  # default until we capture the real one

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000

            txn = newrelic.agent.current_transaction()
            if txn:
                # Route pattern (e.g. "/api/v1/video/live/{ride_id}/upload") for grouping
                route = scope.get("route")
                route_path = route.path if route else scope.get("path", "unknown")

                client = scope.get("client")
                client_ip = client[0] if client else "unknown"

                newrelic.agent.add_custom_attributes([
                    ("http.method", scope.get("method", "")),
                    ("http.route", route_path),
                    ("http.status_code", status_code),
                    ("http.duration_ms", round(duration_ms, 2)),
                    ("http.client_ip", client_ip),
                    ("environment", settings.ENVIRONMENT),
                ])

                path_params = scope.get("path_params") or {}
                for name in _STREAM_KEY_PARAMS:
                    if name in path_params:
                        newrelic.agent.add_custom_attribute("stream.key", str(path_params[name]))
                        break


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Builds the in-memory stream hub and runs its eviction sweepers for
    the lifetime of the process.
    """
    logger.info("Starting RideTracker Live API...")

    if settings.apns_configured:
        logger.info("APNs configured (%s)", settings.APNS_ENVIRONMENT)
    else:
        logger.warning("APNs credentials missing: push delivery runs in testing mode")

    hub = build_stream_hub(settings)
    app.state.hub = hub
    await hub.start()

    yield

    logger.info("Shutting down RideTracker Live API...")
    await hub.stop()


# Create FastAPI application
app = FastAPI(
    title="RideTracker Live API",
    description="""
## Ride Tracking Live Video and Notifications

Live streams and Live Activity notifications for ride tracking.

### Features
- **Frame streaming**: Camera uploads single JPEG frames; viewers poll the latest one
- **HLS live video**: Rolling window of MPEG-TS segments with an HLS playlist
- **Realtime presence**: Viewer join/leave and live status per ride
- **Live Activities**: Ride start/update/end pushes via APNs

### State
All stream state is held in memory. Stopped streams remain readable
for a grace period and are then evicted.

### Upload Limits
- Frames: Max 10MB
- Segments: Max 50MB
    """,
    version="1.0.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
    responses={
        404: {"description": "Stream or resource not found", "model": ErrorResponse},
        409: {"description": "Stream inactive or activity already live", "model": ErrorResponse},
        413: {"description": "Upload too large", "model": ErrorResponse},
        422: {"description": "Validation error", "model": ErrorResponse},
        500: {"description": "Internal server error", "model": ErrorResponse},
    },
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# New Relic transaction enrichment (adds custom attrs to every transaction)
app.add_middleware(NewRelicTransactionMiddleware)

# Setup exception handlers
setup_exception_handlers(app)


# =============================================================================
# Health Check Endpoints
# =============================================================================

@app.get("/health", tags=["Health"])
async def health_check(hub: Hub) -> dict:
    """
    Health check endpoint.

    Returns the current status of the API and its in-memory state.
    """
    return {
        "status": "healthy",
        "version": "1.0.0",
        "environment": hub.settings.ENVIRONMENT,
        "apns": "testing" if hub.push_client.testing_mode else hub.settings.APNS_ENVIRONMENT,
        "sessions": {
            "video": len(hub.frames),
            "live_video": len(hub.segments),
            "realtime": len(hub.realtime),
        },
        "live_activities": len(hub.activities),
    }


@app.get("/", tags=["Health"])
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": "RideTracker Live API",
        "version": "1.0.0",
        "docs": "/docs" if settings.is_development else "Disabled in production",
    }


# =============================================================================
# API Routes
# =============================================================================

# HLS routes first so "/video/live/..." never reaches the frame routes
from app.api.v1 import live_video
app.include_router(live_video.router, prefix="/api/v1/video/live", tags=["Live Video"])

from app.api.v1 import video_frames
app.include_router(video_frames.router, prefix="/api/v1/video", tags=["Video Frames"])

from app.api.v1 import realtime_stream
app.include_router(realtime_stream.router, prefix="/api/v1/stream", tags=["Realtime Stream"])

from app.api.v1 import live_activities
app.include_router(live_activities.router, prefix="/api/v1/liveactivities", tags=["Live Activities"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
