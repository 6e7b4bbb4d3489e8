"""
Realtime Stream Endpoints
=========================

Viewer presence and live status for rides, without any media payload.
Stopped streams are evicted shortly after stop.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query

from app.dependencies import HubSettings, RealtimeRegistry
from app.schemas.stream import ActiveStreamsResponse, StreamInfo, StreamResponse
from app.utils.helpers import generate_viewer_id, stream_url

logger = logging.getLogger(__name__)

router = APIRouter()


def _live_url(base_url: str, ride_id: str) -> str:
    return stream_url(base_url, f"/api/v1/stream/{ride_id}/live")


@router.get("/active", response_model=ActiveStreamsResponse)
async def get_active_realtime_streams(registry: RealtimeRegistry, settings: HubSettings):
    """List live realtime streams."""
    sessions = await registry.list_active()
    streams = [
        {
            "rideId": s.key,
            "viewerCount": s.viewer_count,
            "startTime": s.created_at,
            "streamUrl": _live_url(settings.PUBLIC_BASE_URL, s.key),
        }
        for s in sessions
    ]
    return ActiveStreamsResponse(
        activeStreams=streams,
        totalCount=len(streams),
        serverTime=registry.now(),
    )


@router.post("/{ride_id}/start", response_model=StreamResponse)
async def start_realtime_stream(
    ride_id: str,
    registry: RealtimeRegistry,
    settings: HubSettings,
):
    session = await registry.start(ride_id)
    logger.info("Starting realtime stream for ride: %s", ride_id)

    return StreamResponse(
        streamId=ride_id,
        status="started",
        message="Stream started successfully",
        streamUrl=_live_url(settings.PUBLIC_BASE_URL, ride_id),
        viewerCount=session.viewer_count,
    )


@router.post("/{ride_id}/stop", response_model=StreamResponse)
async def stop_realtime_stream(ride_id: str, registry: RealtimeRegistry):
    await registry.stop(ride_id)
    logger.info("Stopping realtime stream for ride: %s", ride_id)

    return StreamResponse(
        streamId=ride_id,
        status="stopped",
        message="Stream stopped",
        viewerCount=0,
    )


@router.post("/{ride_id}/join", response_model=StreamResponse)
async def join_realtime_stream(
    ride_id: str,
    registry: RealtimeRegistry,
    settings: HubSettings,
    viewer_id: Optional[str] = Query(default=None, alias="viewerId"),
):
    viewer_id = viewer_id or generate_viewer_id()
    viewer_count = await registry.join(ride_id, viewer_id)

    return StreamResponse(
        streamId=ride_id,
        status="viewing",
        message="Successfully joined stream",
        streamUrl=_live_url(settings.PUBLIC_BASE_URL, ride_id),
        viewerId=viewer_id,
        viewerCount=viewer_count,
    )


@router.post("/{ride_id}/leave", response_model=StreamResponse)
async def leave_realtime_stream(
    ride_id: str,
    registry: RealtimeRegistry,
    viewer_id: str = Query(..., alias="viewerId"),
):
    viewer_count = await registry.leave(ride_id, viewer_id)

    return StreamResponse(
        streamId=ride_id,
        status="left",
        message="Successfully left stream",
        viewerId=viewer_id,
        viewerCount=viewer_count,
    )


@router.get("/{ride_id}/status", response_model=StreamInfo)
async def get_realtime_status(
    ride_id: str,
    registry: RealtimeRegistry,
    settings: HubSettings,
):
    """Stream status; unknown or stopped streams report inactive."""
    session = await registry.get(ride_id)
    if session is None or not session.is_active:
        return StreamInfo(streamId=ride_id, isActive=False)

    return StreamInfo(
        streamId=ride_id,
        isActive=True,
        streamUrl=_live_url(settings.PUBLIC_BASE_URL, ride_id),
        startTime=session.created_at,
        lastActivity=session.last_activity,
        viewerCount=session.viewer_count,
    )


@router.get("/{ride_id}/live", response_model=StreamInfo)
async def get_live_view(
    ride_id: str,
    registry: RealtimeRegistry,
    settings: HubSettings,
):
    """
    Live view of a running stream.

    Unlike ``status`` this rejects unknown (404) and stopped (409) streams.
    """
    def apply(session):
        return StreamInfo(
            streamId=ride_id,
            isActive=session.is_active,
            streamUrl=_live_url(settings.PUBLIC_BASE_URL, ride_id),
            startTime=session.created_at,
            lastActivity=session.last_activity,
            viewerCount=session.viewer_count,
        )

    return await registry.read(ride_id, apply)
