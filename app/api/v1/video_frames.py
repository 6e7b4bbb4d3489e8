"""
Video Frame Forwarding Endpoints
================================

Camera → server → viewer forwarding of single JPEG frames.

The publishing device uploads raw frame bytes; viewers poll for the
latest frame.  Only the most recent frame is kept per stream.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, Response

from app.dependencies import FrameRegistry, HubSettings
from app.schemas.stream import (
    ActiveStreamsResponse,
    FrameStreamStats,
    FrameUploadResponse,
    StreamInfo,
    StreamResponse,
)
from app.utils.helpers import generate_viewer_id, stream_url
from app.utils.validators import validate_file_size

logger = logging.getLogger(__name__)

router = APIRouter()

NO_CACHE = "no-cache, no-store, must-revalidate"


def _frame_url(base_url: str, stream_id: str) -> str:
    return stream_url(base_url, f"/api/v1/video/{stream_id}/frame")


@router.get("/active", response_model=ActiveStreamsResponse)
async def get_active_streams(registry: FrameRegistry, settings: HubSettings):
    """List active frame streams."""
    sessions = await registry.list_active()
    streams = [
        {
            "streamId": s.key,
            "viewerCount": s.viewer_count,
            "frameCount": s.buffer.frame_count,
            "bytesReceived": s.buffer.total_bytes_received,
            "startTime": s.created_at,
            "streamUrl": _frame_url(settings.PUBLIC_BASE_URL, s.key),
        }
        for s in sessions
    ]
    return ActiveStreamsResponse(
        activeStreams=streams,
        totalCount=len(streams),
        serverTime=registry.now(),
    )


@router.post("/{stream_id}/start", response_model=StreamResponse)
async def start_video_stream(
    stream_id: str,
    registry: FrameRegistry,
    settings: HubSettings,
):
    """Start (or resume) a frame stream."""
    session = await registry.start(stream_id)
    logger.info("Starting video stream: %s", stream_id)

    return StreamResponse(
        streamId=stream_id,
        status="started",
        message="Video stream started successfully",
        streamUrl=_frame_url(settings.PUBLIC_BASE_URL, stream_id),
        viewerCount=session.viewer_count,
    )


@router.post("/{stream_id}/stop", response_model=StreamResponse)
async def stop_video_stream(stream_id: str, registry: FrameRegistry):
    """Stop a frame stream; unknown streams are acknowledged as well."""
    await registry.stop(stream_id)
    logger.info("Stopping video stream: %s", stream_id)

    return StreamResponse(
        streamId=stream_id,
        status="stopped",
        message="Video stream stopped",
        viewerCount=0,
    )


@router.post("/{stream_id}/frame", response_model=FrameUploadResponse)
async def upload_video_frame(
    stream_id: str,
    request: Request,
    registry: FrameRegistry,
    settings: HubSettings,
):
    """
    Upload a frame from the camera.

    The request body is the raw encoded frame (JPEG).
    """
    frame = await request.body()
    validate_file_size(len(frame), settings.MAX_FRAME_UPLOAD_SIZE_MB, field_name="frame")

    def apply(session):
        frame_number = session.buffer.update_frame(frame)
        return frame_number, session.viewer_count

    frame_number, viewer_count = await registry.write(stream_id, apply)

    logger.info(
        "Received frame for stream %s: %d bytes, total frames: %d",
        stream_id,
        len(frame),
        frame_number,
    )

    return FrameUploadResponse(
        streamId=stream_id,
        frameNumber=frame_number,
        frameSize=len(frame),
        viewerCount=viewer_count,
    )


@router.get("/{stream_id}/frame")
async def get_latest_frame(stream_id: str, registry: FrameRegistry):
    """Serve the latest frame to a viewer."""
    frame = await registry.read(stream_id, lambda s: s.buffer.latest_frame())

    logger.debug("Serving frame for stream %s: %d bytes", stream_id, len(frame))

    return Response(
        content=frame,
        media_type="image/jpeg",
        headers={"Cache-Control": NO_CACHE},
    )


@router.post("/{stream_id}/join", response_model=StreamResponse)
async def join_as_viewer(
    stream_id: str,
    registry: FrameRegistry,
    settings: HubSettings,
    viewer_id: Optional[str] = Query(default=None, alias="viewerId"),
):
    """Join a live frame stream as a viewer."""
    viewer_id = viewer_id or generate_viewer_id()
    viewer_count = await registry.join(stream_id, viewer_id)

    return StreamResponse(
        streamId=stream_id,
        status="viewing",
        message="Successfully joined stream",
        streamUrl=_frame_url(settings.PUBLIC_BASE_URL, stream_id),
        viewerId=viewer_id,
        viewerCount=viewer_count,
    )


@router.post("/{stream_id}/leave", response_model=StreamResponse)
async def leave_stream(
    stream_id: str,
    registry: FrameRegistry,
    viewer_id: str = Query(..., alias="viewerId"),
):
    """Leave a frame stream; leaving twice is harmless."""
    viewer_count = await registry.leave(stream_id, viewer_id)

    return StreamResponse(
        streamId=stream_id,
        status="left",
        message="Successfully left stream",
        viewerId=viewer_id,
        viewerCount=viewer_count,
    )


@router.get("/{stream_id}/info", response_model=StreamInfo)
async def get_stream_info(
    stream_id: str,
    registry: FrameRegistry,
    settings: HubSettings,
):
    """Stream status; unknown or stopped streams report inactive."""
    session = await registry.get(stream_id)
    if session is None or not session.is_active:
        return StreamInfo(streamId=stream_id, isActive=False)

    return StreamInfo(
        streamId=stream_id,
        isActive=True,
        streamUrl=_frame_url(settings.PUBLIC_BASE_URL, stream_id),
        startTime=session.created_at,
        lastActivity=session.last_activity,
        viewerCount=session.viewer_count,
    )


@router.get("/{stream_id}/stats", response_model=FrameStreamStats)
async def get_stream_stats(stream_id: str, registry: FrameRegistry):
    """Throughput statistics; available until the stream is evicted."""
    now = registry.now()

    def apply(session):
        duration = max(0.0, now - session.created_at)
        return FrameStreamStats(
            streamId=stream_id,
            isActive=session.is_active,
            duration=duration,
            viewerCount=session.viewer_count,
            **session.buffer.stats(duration),
        )

    return await registry.inspect(stream_id, apply)
